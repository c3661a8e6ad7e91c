"""Watermarks for PNG images, appended after the re-encoded image data."""

from __future__ import annotations

import base64
import binascii
import io
from datetime import datetime, timedelta
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from docmark.registry import Watermarker, WatermarkError, register_watermarker

WATERMARK_PREFIX = "<!--WATERMARK_BEGIN:"
WATERMARK_SUFFIX = ":WATERMARK_END-->"

_PREFIX = WATERMARK_PREFIX.encode()
_SUFFIX = WATERMARK_SUFFIX.encode()


def _rfc3339_now() -> str:
    now = datetime.now().astimezone().replace(microsecond=0)
    text = now.isoformat()
    return text[:-6] + "Z" if now.utcoffset() == timedelta(0) else text


def _require_file(path: Path) -> None:
    if not path.exists():
        raise WatermarkError(f"输入文件不存在: {path}")


def _reencode_png(path: Path) -> bytes:
    try:
        with Image.open(path) as image:
            if image.format != "PNG":
                raise WatermarkError("解码图片失败: png: invalid format")
            image.load()
            buffer = io.BytesIO()
            image.save(buffer, format="PNG")
    except (UnidentifiedImageError, OSError) as exc:
        raise WatermarkError(f"解码图片失败: {exc}") from exc
    return buffer.getvalue()


class PNGWatermarker(Watermarker):
    """Handles ``.png`` files."""

    file_type = "png"

    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        source = Path(input_file)
        _require_file(source)
        png_data = _reencode_png(source)
        encoded = base64.b64encode(watermark_text.encode("utf-8")).decode("ascii")
        metadata = f"{WATERMARK_PREFIX}{encoded}|{_rfc3339_now()}{WATERMARK_SUFFIX}"
        try:
            Path(output_file).write_bytes(png_data + b"\n" + metadata.encode("utf-8") + b"\n")
        except OSError as exc:
            raise WatermarkError(f"写入输出文件失败: {exc}") from exc

    def extract_watermark(self, input_file) -> tuple[str, str]:
        source = Path(input_file)
        _require_file(source)
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise WatermarkError(f"读取图片文件失败: {exc}") from exc

        start = data.find(_PREFIX)
        if start == -1:
            raise WatermarkError("未找到水印信息")
        end = data.find(_SUFFIX, start)
        if end == -1:
            raise WatermarkError("水印信息格式无效")

        payload = data[start + len(_PREFIX) : end].decode("utf-8", errors="replace")
        parts = payload.split("|")
        if len(parts) < 2:
            raise WatermarkError("水印数据格式无效")
        encoded, timestamp = parts[0], parts[1]
        try:
            decoded = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise WatermarkError(f"解码水印信息失败: {exc}") from exc
        return decoded.decode("utf-8", errors="replace"), timestamp


register_watermarker(PNGWatermarker())