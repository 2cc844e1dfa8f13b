"""Picstash image library backend: job processing and embedding similarity."""

__version__ = "0.1.0"
