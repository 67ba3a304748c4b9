"""Caching Service Implementation.

Provides the in-memory and disk-backed CacheStore implementations and the
cache-aside ResponseCache used by the request executor.
Bounded Context: Cache Management
"""
