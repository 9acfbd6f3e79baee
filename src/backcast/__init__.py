"""Backcast - replay a podcast's back-catalog on your own schedule."""

__version__ = "0.1.0"
