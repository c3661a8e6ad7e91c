"""Watermarks for JPEG images, stored in a COM segment after the SOI marker."""

from __future__ import annotations

import base64
import binascii
import io
import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from docmark.cipher import md5_checksum, open_gcm, seal_gcm
from docmark.registry import Watermarker, WatermarkError, register_watermarker

COMMENT_PREFIX = b"WATERMARK:"
_SOI = b"\xff\xd8"
_COM = b"\xff\xfe"
_DECODABLE_FORMATS = {"JPEG", "PNG"}


@dataclass
class WatermarkMetadata:
    """The record stored, as base64 JSON, inside the comment segment."""

    timestamp: int = 0
    checksum: str = ""
    content: str = ""


def _metadata_to_json(metadata: WatermarkMetadata) -> bytes:
    return json.dumps(asdict(metadata), ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def _metadata_from_json(data: bytes) -> WatermarkMetadata:
    try:
        raw = json.loads(data.decode("utf-8", errors="replace"))
    except json.JSONDecodeError as exc:
        raise WatermarkError(str(exc)) from exc
    if not isinstance(raw, dict):
        raise WatermarkError("json: cannot unmarshal into WatermarkMetadata")

    fields = {key.lower(): value for key, value in raw.items()}
    metadata = WatermarkMetadata()
    timestamp = fields.get("timestamp")
    if timestamp is not None:
        if isinstance(timestamp, bool) or not isinstance(timestamp, int):
            raise WatermarkError("json: cannot unmarshal timestamp into int64")
        metadata.timestamp = timestamp
    for name in ("checksum", "content"):
        value = fields.get(name)
        if value is not None:
            if not isinstance(value, str):
                raise WatermarkError(f"json: cannot unmarshal {name} into string")
            setattr(metadata, name, value)
    return metadata


def _encode_jpeg(path: Path) -> bytes:
    try:
        with Image.open(path) as image:
            if image.format not in _DECODABLE_FORMATS:
                raise WatermarkError("解码图片失败: image: unknown format")
            image.load()
            if image.mode not in ("RGB", "L", "CMYK"):
                image = image.convert("RGB")
            buffer = io.BytesIO()
            image.save(buffer, format="JPEG", quality=95)
    except (UnidentifiedImageError, OSError) as exc:
        raise WatermarkError(f"解码图片失败: {exc}") from exc
    return buffer.getvalue()


def _comment_segment(body: bytes) -> bytes:
    length = len(body) + 2
    return _COM + bytes([(length >> 8) & 0xFF, length & 0xFF]) + body


def _find_watermark_comment(data: bytes) -> bytes | None:
    i = 2
    while i < len(data) - 4:
        if data[i] == 0xFF and data[i + 1] == 0xFE:
            length = (data[i + 2] << 8) | data[i + 3]
            if i + 4 + length - 2 <= len(data):
                comment = data[i + 4 : i + 2 + length]
                if comment.startswith(COMMENT_PREFIX):
                    return comment[len(COMMENT_PREFIX) :]
            i += 2 + length
        else:
            i += 1
    return None


class JPGWatermarker(Watermarker):
    """Handles ``.jpg`` files."""

    file_type = "jpg"

    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        source = Path(input_file)
        if not source.exists():
            raise WatermarkError(f"输入文件不存在: {input_file}")
        jpeg_data = _encode_jpeg(source)

        try:
            output = open(output_file, "wb")
        except OSError as exc:
            raise WatermarkError(f"创建输出文件失败: {exc}") from exc
        with output:
            try:
                encrypted = seal_gcm(watermark_text)
            except WatermarkError as exc:
                raise WatermarkError(f"加密水印失败: {exc}") from exc

            metadata = WatermarkMetadata(
                timestamp=int(time.time()),
                checksum=md5_checksum(watermark_text),
                content=encrypted,
            )
            body = COMMENT_PREFIX + base64.b64encode(_metadata_to_json(metadata))
            final = jpeg_data[:2] + _comment_segment(body) + jpeg_data[2:]
            try:
                output.write(final)
            except OSError as exc:
                raise WatermarkError(f"写入输出文件失败: {exc}") from exc

    def extract_watermark(self, input_file) -> tuple[str, str]:
        source = Path(input_file)
        if not source.exists():
            raise WatermarkError(f"输入文件不存在: {input_file}")
        try:
            data = source.read_bytes()
        except OSError as exc:
            raise WatermarkError(f"读取图片文件失败: {exc}") from exc
        if not data.startswith(_SOI):
            raise WatermarkError("无效的JPEG文件格式")

        comment = _find_watermark_comment(data)
        if comment is None:
            raise WatermarkError("未找到水印数据")

        try:
            metadata_json = base64.b64decode(comment, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise WatermarkError(f"解码水印元数据失败: {exc}") from exc
        try:
            metadata = _metadata_from_json(metadata_json)
        except WatermarkError as exc:
            raise WatermarkError(f"解析水印元数据失败: {exc}") from exc
        try:
            text = open_gcm(metadata.content)
        except WatermarkError as exc:
            raise WatermarkError(f"解密水印失败: {exc}") from exc

        if md5_checksum(text) != metadata.checksum:
            raise WatermarkError("水印校验和不匹配，文件可能被篡改")
        return text, str(metadata.timestamp)


register_watermarker(JPGWatermarker())