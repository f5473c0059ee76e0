"""Rate limit decision service backed by a shared atomic store."""

__version__ = "0.1.0"
