"""Watermarks for XLSX workbooks, injected into several XML parts of the archive."""

from __future__ import annotations

import re
import zipfile
import zlib
from datetime import datetime, timedelta
from pathlib import Path

from docmark.cipher import cfb_decrypt, cfb_encrypt, md5_checksum
from docmark.registry import Watermarker, WatermarkError, register_watermarker

WATERMARK_PREFIX = "WATERMARK_BEGIN:"
WATERMARK_SUFFIX = ":WATERMARK_END"

CORE_PROPS_FILE = "docProps/core.xml"
WORKBOOK_FILE = "xl/workbook.xml"
SHARED_STRINGS_FILE = "xl/sharedStrings.xml"
WATERMARK_FILES = (CORE_PROPS_FILE, WORKBOOK_FILE, SHARED_STRINGS_FILE)

_PATTERN = re.compile(
    re.escape(WATERMARK_PREFIX.encode()) + rb"(.*?)" + re.escape(WATERMARK_SUFFIX.encode())
)
_READ_ERRORS = (zipfile.BadZipFile, OSError, zlib.error, RuntimeError, ValueError)


def _rfc3339_now() -> str:
    now = datetime.now().astimezone().replace(microsecond=0)
    text = now.isoformat()
    return text[:-6] + "Z" if now.utcoffset() == timedelta(0) else text


def create_watermark_data(text: str) -> tuple[str, str]:
    """Return the marker string for ``text`` and the checksum it was keyed with."""
    timestamp = _rfc3339_now()
    checksum = md5_checksum(text + timestamp)
    encrypted = cfb_encrypt(text, checksum[:16])
    data = f"{WATERMARK_PREFIX}{encrypted}|{timestamp}|{checksum}{WATERMARK_SUFFIX}"
    return data, checksum


def _insert_before_last(content: bytes, end_tag: bytes, insertion: bytes) -> bytes:
    index = content.rfind(end_tag)
    if index > 0:
        return content[:index] + insertion + content[index:]
    return content


def inject_watermark(content: bytes, file_name: str, watermark_data: str) -> bytes:
    """Return ``content`` of the named archive part with the marker inserted."""
    if file_name == CORE_PROPS_FILE:
        comment = f"<!-- {watermark_data} -->".encode("utf-8")
        return _insert_before_last(content, b"</cp:coreProperties>", comment)
    if file_name == WORKBOOK_FILE:
        comment = f"<!-- {watermark_data} -->".encode("utf-8")
        return _insert_before_last(content, b"</workbook>", comment)
    if file_name == SHARED_STRINGS_FILE:
        hidden = f'<si><t xml:space="preserve">{watermark_data}</t></si>'.encode("utf-8")
        return _insert_before_last(content, b"</sst>", hidden)
    return content


def find_watermark_data(content: bytes) -> str | None:
    """Return the text between the first pair of markers, or None if absent."""
    match = _PATTERN.search(content)
    if match is None:
        return None
    return match.group(1).decode("utf-8", errors="replace")


def _open_workbook(input_file) -> zipfile.ZipFile:
    try:
        data = Path(input_file).read_bytes()
    except OSError as exc:
        raise WatermarkError(f"读取XLSX文件失败: {exc}") from exc
    import io

    try:
        return zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise WatermarkError(f"解析XLSX文件失败: {exc}") from exc


def _read_part(reader: zipfile.ZipFile, file_name: str) -> bytes | None:
    info = next((item for item in reader.infolist() if item.filename == file_name), None)
    if info is None:
        return None
    try:
        return reader.read(info)
    except _READ_ERRORS:
        return None


def _copy_info(info: zipfile.ZipInfo) -> zipfile.ZipInfo:
    copied = zipfile.ZipInfo(info.filename, info.date_time)
    copied.compress_type = info.compress_type
    copied.external_attr = info.external_attr
    copied.create_system = info.create_system
    copied.comment = info.comment
    return copied


class XLSXWatermarker(Watermarker):
    """Handles ``.xlsx`` files."""

    file_type = "xlsx"

    def add_watermark(self, input_file, output_file, watermark_text) -> None:
        import io

        with _open_workbook(input_file) as reader:
            buffer = io.BytesIO()
            try:
                watermark_data, _ = create_watermark_data(watermark_text)
            except WatermarkError as exc:
                raise WatermarkError(f"创建水印数据失败: {exc}") from exc

            processed: set[str] = set()
            with zipfile.ZipFile(buffer, "w") as writer:
                for file_name in WATERMARK_FILES:
                    content = _read_part(reader, file_name)
                    if content is None:
                        continue
                    modified = inject_watermark(content, file_name, watermark_data)
                    writer.writestr(file_name, modified, compress_type=zipfile.ZIP_DEFLATED)
                    processed.add(file_name)

                for info in reader.infolist():
                    if info.filename in processed:
                        continue
                    try:
                        content = reader.read(info)
                    except _READ_ERRORS as exc:
                        raise WatermarkError(f"打开XLSX内部文件失败: {exc}") from exc
                    writer.writestr(_copy_info(info), content)

        try:
            Path(output_file).write_bytes(buffer.getvalue())
        except OSError as exc:
            raise WatermarkError(f"写入输出文件失败: {exc}") from exc

    def extract_watermark(self, input_file) -> tuple[str, str]:
        with _open_workbook(input_file) as reader:
            contents = [_read_part(reader, name) for name in WATERMARK_FILES]

        for content in contents:
            if content is None:
                continue
            watermark_data = find_watermark_data(content)
            if not watermark_data:
                continue
            parts = watermark_data.split("|")
            if len(parts) < 3:
                continue
            encrypted, timestamp, checksum = parts[0], parts[1], parts[2]
            try:
                text = cfb_decrypt(encrypted, checksum[:16])
            except WatermarkError:
                continue
            if md5_checksum(text + timestamp) != checksum:
                continue
            return text, timestamp

        raise WatermarkError("未在XLSX文件中找到有效的水印信息")


register_watermarker(XLSXWatermarker())