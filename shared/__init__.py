"""
Records, identifiers and helpers shared by the data layer and its tools.
"""
