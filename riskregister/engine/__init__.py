"""
Pure calculators.

No I/O, no shared mutable state: safe to call from any request handler.
"""
