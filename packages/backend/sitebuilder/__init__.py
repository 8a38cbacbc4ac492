"""Streaming website generation backend."""

__version__ = "0.1.0"
