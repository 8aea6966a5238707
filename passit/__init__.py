"""
Client-side data layer for the PassIt marketplace.

Repositories combine a local SQL cache with Firebase (Auth, Firestore,
Storage) and expose observe/get/write operations to the view-state holders.
"""
