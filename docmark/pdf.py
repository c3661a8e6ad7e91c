"""Watermarks for PDF files, stored as a marker line before the trailer."""

from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime, timedelta
from pathlib import Path

from docmark.registry import Watermarker, WatermarkError, register_watermarker

WATERMARK_PREFIX = "%WATERMARK_BEGIN:"
WATERMARK_SUFFIX = ":WATERMARK_END%"

_PATTERN = re.compile(
    re.escape(WATERMARK_PREFIX.encode()) + rb"(.*?)" + re.escape(WATERMARK_SUFFIX.encode())
)


def _rfc3339_now() -> str:
    now = datetime.now().astimezone().replace(microsecond=0)
    text = now.isoformat()
    return text[:-6] + "Z" if now.utcoffset() == timedelta(0) else text


def create_watermark_metadata(text: str) -> str:
    """Build the marker string holding the encoded text and the current time."""
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return f"{WATERMARK_PREFIX}{encoded}|{_rfc3339_now()}{WATERMARK_SUFFIX}"


def insert_metadata(pdf_data: bytes, metadata: str) -> bytes:
    """Insert the marker before the last ``trailer``, or append it at the end."""
    line = b"\n" + metadata.encode("utf-8") + b"\n"
    trailer_pos = pdf_data.rfind(b"trailer")
    if trailer_pos > 0:
        return pdf_data[:trailer_pos] + line + pdf_data[trailer_pos:]
    return pdf_data + line


def _read_pdf(input_file) -> bytes:
    try:
        data = Path(input_file).read_bytes()
    except OSError as exc:
        raise WatermarkError(f"读取PDF文件失败: {exc}") from exc
    if not data.startswith(b"%PDF-"):
        raise WatermarkError("不是有效的PDF文件")
    return data


class PDFWatermarker(Watermarker):
    """Handles ``.pdf`` files."""

    file_type = "pdf"

    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        data = _read_pdf(input_file)
        watermarked = insert_metadata(data, create_watermark_metadata(watermark_text))
        try:
            Path(output_file).write_bytes(watermarked)
        except OSError as exc:
            raise WatermarkError(f"写入PDF文件失败: {exc}") from exc

    def extract_watermark(self, input_file) -> tuple[str, str]:
        data = _read_pdf(input_file)
        match = _PATTERN.search(data)
        if match is None:
            raise WatermarkError("未找到水印信息")
        parts = match.group(1).decode("utf-8", errors="replace").split("|")
        if len(parts) < 2:
            raise WatermarkError("水印格式无效")
        encoded, timestamp = parts[0], parts[1]
        try:
            decoded = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise WatermarkError(f"解码水印失败: {exc}") from exc
        return decoded.decode("utf-8", errors="replace"), timestamp


register_watermarker(PDFWatermarker())