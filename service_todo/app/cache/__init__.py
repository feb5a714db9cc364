"""
Cache package for the Todo Service.

Currently provides a Redis-backed cache holding single todos and the
full todo list with fixed TTLs; writes invalidate the list entry.
"""
