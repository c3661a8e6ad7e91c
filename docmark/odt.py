"""Watermarks for ODT documents, stored as an extra XML entry in the archive."""

from __future__ import annotations

import time
import zipfile
import zlib
from pathlib import Path
from xml.etree import ElementTree

from docmark.cipher import md5_checksum, open_gcm, seal_gcm
from docmark.registry import Watermarker, WatermarkError, register_watermarker

WATERMARK_ENTRY = "watermark-data.xml"

_READ_ERRORS = (zipfile.BadZipFile, OSError, zlib.error, RuntimeError, ValueError)


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _open_archive(input_file) -> zipfile.ZipFile:
    source = Path(input_file)
    if not source.exists():
        raise WatermarkError(f"输入文件不存在: {input_file}")
    try:
        return zipfile.ZipFile(source)
    except (zipfile.BadZipFile, OSError) as exc:
        raise WatermarkError(f"打开ODT文件失败: {exc}") from exc


def _parse_metadata(data: bytes) -> tuple[str, str, str]:
    """Return ``(timestamp, checksum, encrypted)`` from the metadata entry."""
    try:
        root = ElementTree.fromstring(data)
    except ElementTree.ParseError as exc:
        raise WatermarkError(str(exc)) from exc
    name = _local_name(root.tag)
    if name != "watermark":
        raise WatermarkError(f"expected element type <watermark> but have <{name}>")

    attributes = {_local_name(key): value for key, value in root.attrib.items()}
    chardata = (root.text or "") + "".join(child.tail or "" for child in root)
    return attributes.get("timestamp", ""), attributes.get("checksum", ""), chardata


class ODTWatermarker(Watermarker):
    """Handles ``.odt`` files."""

    file_type = "odt"

    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        with _open_archive(input_file) as reader:
            try:
                writer = zipfile.ZipFile(output_file, "w", compression=zipfile.ZIP_DEFLATED)
            except OSError as exc:
                raise WatermarkError(f"创建输出文件失败: {exc}") from exc
            with writer:
                try:
                    encrypted = seal_gcm(watermark_text)
                except WatermarkError as exc:
                    raise WatermarkError(f"加密水印失败: {exc}") from exc

                metadata = (
                    f'<watermark timestamp="{int(time.time())}" '
                    f'checksum="{md5_checksum(watermark_text)}">{encrypted}</watermark>'
                )
                writer.writestr(WATERMARK_ENTRY, metadata)

                for info in reader.infolist():
                    if info.filename.endswith(WATERMARK_ENTRY):
                        continue
                    try:
                        content = reader.read(info)
                    except _READ_ERRORS as exc:
                        raise WatermarkError(f"复制文件内容失败 {info.filename}: {exc}") from exc
                    writer.writestr(info.filename, content)

    def extract_watermark(self, input_file) -> tuple[str, str]:
        with _open_archive(input_file) as reader:
            entry = next(
                (info for info in reader.infolist() if info.filename.endswith(WATERMARK_ENTRY)),
                None,
            )
            data = b""
            if entry is not None:
                try:
                    data = reader.read(entry)
                except _READ_ERRORS as exc:
                    raise WatermarkError(f"读取水印元数据失败: {exc}") from exc

        if not data:
            raise WatermarkError("未找到水印数据")

        try:
            timestamp, checksum, encrypted = _parse_metadata(data)
        except WatermarkError as exc:
            raise WatermarkError(f"解析水印元数据失败: {exc}") from exc

        try:
            text = open_gcm(encrypted)
        except WatermarkError as exc:
            raise WatermarkError(f"解密水印失败: {exc}") from exc

        if md5_checksum(text) != checksum:
            raise WatermarkError("水印校验和不匹配，文件可能被篡改")
        return text, timestamp


register_watermarker(ODTWatermarker())