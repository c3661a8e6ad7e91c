"""Archive unpacking and marker search shared by the Office Open XML handlers."""

from __future__ import annotations

import re
import shutil
import zipfile
import zlib
from collections.abc import Iterator
from pathlib import Path

from docmark.registry import WatermarkError

_KEYWORDS_OPEN = b"<cp:keywords>"
_CORE_CLOSE = b"</cp:coreProperties>"
_COMMENT_END = b"-->"
_CORE_TERMINATOR = re.compile(rb"[< ]")

_ARCHIVE_ERRORS = (zipfile.BadZipFile, OSError, zlib.error, RuntimeError, ValueError)


def unzip_file(zip_file, dest_dir) -> None:
    """Extract every entry of ``zip_file`` below ``dest_dir``."""
    dest = Path(dest_dir)
    try:
        with zipfile.ZipFile(zip_file) as archive:
            for info in archive.infolist():
                path = dest / info.filename.lstrip("/")
                if info.is_dir():
                    try:
                        path.mkdir(parents=True, exist_ok=True)
                    except OSError:
                        pass
                    continue
                path.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info) as source, open(path, "wb") as target:
                    shutil.copyfileobj(source, target)
    except _ARCHIVE_ERRORS as exc:
        raise WatermarkError(str(exc)) from exc


def _walk(directory: Path) -> Iterator[Path]:
    for entry in sorted(directory.iterdir(), key=lambda item: item.name):
        yield entry
        if entry.is_dir() and not entry.is_symlink():
            yield from _walk(entry)


def zip_dir(source_dir, zip_file) -> None:
    """Pack the contents of ``source_dir`` into ``zip_file``, in lexical walk order."""
    root = Path(source_dir)
    try:
        with zipfile.ZipFile(zip_file, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path in _walk(root):
                relative = path.relative_to(root).as_posix()
                if path.is_dir() and not path.is_symlink():
                    archive.writestr(relative + "/", b"")
                else:
                    archive.write(path, relative)
    except _ARCHIVE_ERRORS as exc:
        raise WatermarkError(str(exc)) from exc


def add_keyword_watermark(core_content: bytes, watermark_text: str) -> bytes:
    """Return ``core.xml`` content with the watermark put into its keywords."""
    text = watermark_text.encode("utf-8")
    if _KEYWORDS_OPEN in core_content:
        return core_content.replace(
            _KEYWORDS_OPEN, _KEYWORDS_OPEN + b"Watermark:" + text + b" ", 1
        )
    if _CORE_CLOSE in core_content:
        return core_content.replace(
            _CORE_CLOSE,
            b"<cp:keywords>Watermark:" + text + b"</cp:keywords>" + _CORE_CLOSE,
            1,
        )
    return core_content


def _encode(prefix) -> bytes:
    return prefix.encode("utf-8") if isinstance(prefix, str) else bytes(prefix)


def find_core_value(content: bytes, prefix, limit: int) -> str | None:
    """Return the value after ``prefix`` up to ``<`` or a space within ``limit`` bytes.

    A prefix at the very start of ``content`` is not recognised.
    """
    marker = _encode(prefix)
    index = content.find(marker)
    if index <= 0:
        return None
    start = index + len(marker)
    match = _CORE_TERMINATOR.search(content, start, start + limit)
    if match is None or match.start() == start:
        return None
    return content[start : match.start()].decode("utf-8", errors="replace")


def find_comment_value(content: bytes, prefix, limit: int) -> str | None:
    """Return the value after ``prefix`` up to a ``-->`` starting within ``limit`` bytes.

    A prefix at the very start of ``content`` is not recognised.
    """
    marker = _encode(prefix)
    index = content.find(marker)
    if index <= 0:
        return None
    start = index + len(marker)
    end = content.find(_COMMENT_END, start, start + limit + len(_COMMENT_END) - 1)
    if end <= start:
        return None
    return content[start:end].decode("utf-8", errors="replace")