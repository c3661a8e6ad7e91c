"""Handlers that add and extract hidden text watermarks in documents and images."""

__version__ = "0.1.0"