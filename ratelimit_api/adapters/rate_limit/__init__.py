"""Rate limiting algorithms.

Both limiters keep all of their state in an ``AbstractAtomicStore`` so any
number of service instances can enforce one limit against a shared Redis.
"""
