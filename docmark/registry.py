"""Watermarker interface and the registry of handlers by file type."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar


class WatermarkError(Exception):
    """Raised when a watermark cannot be added or extracted."""


class Watermarker(ABC):
    """A handler that adds and extracts watermarks for one file type."""

    file_type: ClassVar[str] = ""

    @abstractmethod
    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        """Write a watermarked copy of ``input_file`` to ``output_file``."""

    @abstractmethod
    def extract_watermark(self, input_file) -> tuple[str, str]:
        """Return ``(watermark_text, timestamp)`` found in ``input_file``."""


_registry: dict[str, Watermarker] = {}


def register_watermarker(watermarker: Watermarker) -> None:
    """Register a handler under its file type, replacing any earlier one."""
    _registry[watermarker.file_type] = watermarker


def get_watermarker(file_type: str) -> Watermarker | None:
    """Return the handler for ``file_type``, or None if there is none."""
    return _registry.get(file_type)


def registered_types() -> list[str]:
    """Return the file types that have a registered handler."""
    return list(_registry)