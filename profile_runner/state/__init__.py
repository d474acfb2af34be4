"""
Runner state and circuit breaker module.

Holds the per-profile runner record, the closed set of worker outcome
classifications and the error-streak circuit breaker that pauses profiles.
"""
