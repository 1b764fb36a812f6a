"""Naafe' services marketplace backend: offer negotiation and service lifecycle."""

__version__ = "1.0.0"
