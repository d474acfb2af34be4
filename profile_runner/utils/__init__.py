"""
Utility functions module.

Wall-clock helpers shared by the state store, the circuit breaker and the
supervisor. All timestamps are timezone-aware UTC and persisted as ISO8601.
"""
