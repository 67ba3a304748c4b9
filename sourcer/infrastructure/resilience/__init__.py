"""API Resilience Implementations.

Contains the sliding-window rate limiter and the request executor that
handles signing, caching, retries with exponential backoff and deadlines.
Bounded Context: API Resilience
"""
