"""
Repositories combine the local cache with the remote data sources.

Reads are served from the cache while a background refresh pulls the latest
documents from the remote store; writes go to the remote store first and
then to the cache.
"""
