"""Shared helpers: clock, logging and formatting."""
