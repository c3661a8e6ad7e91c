"""Watermarks for RTF documents, stored as a hidden destination group."""

from __future__ import annotations

import re
import time
from pathlib import Path

from docmark.cipher import md5_checksum, open_gcm, seal_gcm
from docmark.registry import Watermarker, WatermarkError, register_watermarker

RTF_HEADER = b"{\\rtf1"

_INFO_BLOCK = re.compile(rb"\\info[\s\S]*?\}", re.IGNORECASE)
_WATERMARK_DATA = re.compile(
    rb'\{\\*\\watermark-data timestamp="(\d+)" checksum="([a-f0-9]+)"'
    rb"\\watermark-content ([A-Za-z0-9+/=]+)\\watermark-end\}"
)

_INT64_MAX = 2**63 - 1


def prepare_watermark_data(watermark_text: str) -> str:
    """Build the RTF group holding the encrypted text, its checksum and the time."""
    encrypted = seal_gcm(watermark_text)
    checksum = md5_checksum(watermark_text)
    return (
        f'{{\\*\\watermark-data timestamp="{int(time.time())}" checksum="{checksum}"'
        f"\\watermark-content {encrypted}\\watermark-end}}"
    )


def _read_rtf(input_file) -> bytes:
    path = Path(input_file)
    if not path.exists():
        raise WatermarkError(f"输入文件不存在: {input_file}")
    try:
        content = path.read_bytes()
    except OSError as exc:
        raise WatermarkError(f"读取RTF文件失败: {exc}") from exc
    if not content.startswith(RTF_HEADER):
        raise WatermarkError("无效的RTF文件格式")
    return content


def _insert_position(content: bytes) -> int:
    match = _INFO_BLOCK.search(content)
    if match is not None:
        return match.end()
    for marker in (b"\\deff", b"\\deflang"):
        position = content.find(marker)
        if position != -1:
            return position
    return len(RTF_HEADER)


class RTFWatermarker(Watermarker):
    """Handles ``.rtf`` files."""

    file_type = "rtf"

    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        content = _read_rtf(input_file)
        try:
            data = prepare_watermark_data(watermark_text).encode("utf-8")
        except WatermarkError as exc:
            raise WatermarkError(f"准备水印数据失败: {exc}") from exc

        position = _insert_position(content)
        # The output buffer is sized two bytes larger than its contents.
        modified = content[:position] + data + content[position:] + b"\x00\x00"
        try:
            Path(output_file).write_bytes(modified)
        except OSError as exc:
            raise WatermarkError(f"写入输出文件失败: {exc}") from exc

    def extract_watermark(self, input_file) -> tuple[str, str]:
        content = _read_rtf(input_file)
        match = _WATERMARK_DATA.search(content)
        if match is None:
            raise WatermarkError("未找到水印数据")

        timestamp, checksum, encrypted = (group.decode("ascii") for group in match.groups())
        try:
            text = open_gcm(encrypted)
        except WatermarkError as exc:
            raise WatermarkError(f"解密水印失败: {exc}") from exc

        if md5_checksum(text) != checksum:
            raise WatermarkError("水印校验和不匹配，文件可能被篡改")
        if int(timestamp) > _INT64_MAX:
            raise WatermarkError("水印时间戳无效")
        return text, timestamp


register_watermarker(RTFWatermarker())