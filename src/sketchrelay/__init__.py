"""Real-time collaborative drawing relay."""

__version__ = "0.1.0"
