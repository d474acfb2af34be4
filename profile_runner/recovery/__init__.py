"""
Recovery ladder module.

Named remedial steps, the clients that carry them out against a profile's
browser runtime, and the executor that walks the ladder one step per
classified failure.
"""
