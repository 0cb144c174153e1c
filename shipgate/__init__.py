"""Four-loop review pipeline and ship gate."""

__version__ = "0.1.0"
