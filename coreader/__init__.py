"""Real-time collaborative reading session engine."""

__version__ = "0.1.0"
