"""Arbiter: a session router for a Manager/Worker agent hierarchy."""

__version__ = "0.1.0"
