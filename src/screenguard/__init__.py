"""ScreenGuard: usage limits, time restrictions and focus sessions."""

__version__ = "1.0.0"
