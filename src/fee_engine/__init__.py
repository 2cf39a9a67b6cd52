"""Fee & permit payment lifecycle engine."""

__version__ = "0.1.0"
