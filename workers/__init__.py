"""
Background fetch workers for the aircraft feed and route lookups.
"""
