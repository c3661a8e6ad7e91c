"""Watermarks for DOCX documents, stored in core properties and a body comment."""

from __future__ import annotations

import tempfile
from datetime import datetime, timedelta
from pathlib import Path

from docmark.archive import (
    add_keyword_watermark,
    find_comment_value,
    find_core_value,
    unzip_file,
    zip_dir,
)
from docmark.registry import Watermarker, WatermarkError, register_watermarker

_BODY_TAG = b"<w:body>"


def _rfc3339_now() -> str:
    now = datetime.now().astimezone().replace(microsecond=0)
    text = now.isoformat()
    return text[:-6] + "Z" if now.utcoffset() == timedelta(0) else text


def _read_optional(path: Path) -> bytes | None:
    if not path.exists():
        return None
    try:
        return path.read_bytes()
    except OSError:
        return None


def _unpack(input_file, dest: Path) -> None:
    try:
        unzip_file(input_file, dest)
    except WatermarkError as exc:
        raise WatermarkError(f"解压DOCX文件失败: {exc}") from exc


def _read_document(root: Path) -> bytes:
    try:
        return (root / "word" / "document.xml").read_bytes()
    except OSError as exc:
        raise WatermarkError(f"读取document.xml失败: {exc}") from exc


class DOCXWatermarker(Watermarker):
    """Handles ``.docx`` files."""

    file_type = "docx"

    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        with tempfile.TemporaryDirectory(prefix="docx-watermark-") as temp:
            root = Path(temp)
            _unpack(input_file, root)
            document = _read_document(root)

            core_path = root / "docProps" / "core.xml"
            core = _read_optional(core_path)
            if core is not None:
                updated = add_keyword_watermark(core, watermark_text)
                if updated != core:
                    try:
                        core_path.write_bytes(updated)
                    except OSError as exc:
                        raise WatermarkError(f"写入core.xml失败: {exc}") from exc

            if _BODY_TAG in document:
                tag = f"<!-- Watermark: {watermark_text} -->".encode("utf-8")
                document = document.replace(_BODY_TAG, _BODY_TAG + tag, 1)
                try:
                    (root / "word" / "document.xml").write_bytes(document)
                except OSError as exc:
                    raise WatermarkError(f"写入document.xml失败: {exc}") from exc

            try:
                zip_dir(root, output_file)
            except WatermarkError as exc:
                raise WatermarkError(f"重新打包DOCX文件失败: {exc}") from exc

    def extract_watermark(self, input_file) -> tuple[str, str]:
        with tempfile.TemporaryDirectory(prefix="docx-extract-") as temp:
            root = Path(temp)
            _unpack(input_file, root)
            timestamp = _rfc3339_now()

            core = _read_optional(root / "docProps" / "core.xml")
            if core is not None:
                found_time = find_core_value(core, "TimeStamp:", 50)
                if found_time is not None:
                    timestamp = found_time
                text = find_core_value(core, "Watermark:", 100)
                if text is not None:
                    return text, timestamp

            document = _read_document(root)
            found_time = find_comment_value(document, "<!-- TimeStamp: ", 50)
            if found_time is not None:
                timestamp = found_time
            text = find_comment_value(document, "<!-- Watermark: ", 100)
            if text is not None:
                return text, timestamp

        raise WatermarkError("未找到水印信息")


register_watermarker(DOCXWatermarker())