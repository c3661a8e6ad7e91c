from datetime import datetime

import pytest

from docmark.pdf import (
    WATERMARK_PREFIX,
    WATERMARK_SUFFIX,
    PDFWatermarker,
    create_watermark_metadata,
    insert_metadata,
)
from docmark.registry import WatermarkError, get_watermarker

SAMPLE = b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<< /Root 1 0 R >>\n%%EOF\n"


def _parse_time(text):
    return datetime.fromisoformat(text.replace("Z", "+00:00"))


def test_metadata_has_markers_and_time():
    metadata = create_watermark_metadata("hello")
    assert metadata.startswith(WATERMARK_PREFIX)
    assert metadata.endswith(WATERMARK_SUFFIX)
    body = metadata[len(WATERMARK_PREFIX) : -len(WATERMARK_SUFFIX)]
    encoded, stamp = body.split("|")
    assert encoded == "aGVsbG8="
    assert _parse_time(stamp).tzinfo is not None


def test_insert_before_trailer():
    data = b"%PDF-1.4\nbody\ntrailer\n<<>>"
    result = insert_metadata(data, "META")
    assert result == b"%PDF-1.4\nbody\n\nMETA\ntrailer\n<<>>"


def test_insert_uses_last_trailer():
    data = b"%PDF-x trailer a trailer b"
    result = insert_metadata(data, "M")
    assert result == b"%PDF-x trailer a \nM\ntrailer b"


def test_insert_appends_without_trailer():
    data = b"%PDF-1.4\nbody"
    assert insert_metadata(data, "META") == data + b"\nMETA\n"


def test_insert_appends_when_trailer_at_start():
    data = b"trailer only"
    assert insert_metadata(data, "M") == data + b"\nM\n"


@pytest.mark.parametrize("text", ["Confidential", "测试水印", "a|b"])
def test_round_trip(tmp_path, text):
    source = tmp_path / "in.pdf"
    target = tmp_path / "out.pdf"
    source.write_bytes(SAMPLE)
    handler = PDFWatermarker()
    handler.add_watermark(source, target, text)
    extracted, stamp = handler.extract_watermark(target)
    assert extracted == text
    assert _parse_time(stamp).year >= 2024
    assert target.read_bytes().startswith(b"%PDF-")


def test_rejects_non_pdf(tmp_path):
    source = tmp_path / "in.pdf"
    source.write_bytes(b"plain text")
    with pytest.raises(WatermarkError, match="不是有效的PDF文件"):
        PDFWatermarker().add_watermark(source, tmp_path / "out.pdf", "x")
    with pytest.raises(WatermarkError, match="不是有效的PDF文件"):
        PDFWatermarker().extract_watermark(source)


def test_missing_file(tmp_path):
    with pytest.raises(WatermarkError, match="读取PDF文件失败"):
        PDFWatermarker().extract_watermark(tmp_path / "missing.pdf")


def test_no_watermark(tmp_path):
    source = tmp_path / "in.pdf"
    source.write_bytes(SAMPLE)
    with pytest.raises(WatermarkError, match="未找到水印信息"):
        PDFWatermarker().extract_watermark(source)


def test_marker_without_separator(tmp_path):
    source = tmp_path / "in.pdf"
    source.write_bytes(b"%PDF-1.4\n" + (WATERMARK_PREFIX + "abc" + WATERMARK_SUFFIX).encode())
    with pytest.raises(WatermarkError, match="水印格式无效"):
        PDFWatermarker().extract_watermark(source)


def test_marker_with_bad_base64(tmp_path):
    source = tmp_path / "in.pdf"
    marker = WATERMARK_PREFIX + "!!!|2024-01-01T00:00:00Z" + WATERMARK_SUFFIX
    source.write_bytes(b"%PDF-1.4\n" + marker.encode())
    with pytest.raises(WatermarkError, match="解码水印失败"):
        PDFWatermarker().extract_watermark(source)


def test_registered_handler_round_trips(tmp_path):
    source = tmp_path / "in.pdf"
    target = tmp_path / "out.pdf"
    source.write_bytes(SAMPLE)
    handler = get_watermarker("pdf")
    handler.add_watermark(source, target, "via registry")
    assert handler.extract_watermark(target)[0] == "via registry"