"""Callback gateway for WeChat official accounts."""

__version__ = "1.0.0"
