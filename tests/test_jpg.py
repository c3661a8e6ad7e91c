import base64
import io
import json

import pytest
from PIL import Image

from docmark.jpg import JPGWatermarker, WatermarkMetadata
from docmark.registry import WatermarkError, get_watermarker


def _jpeg_bytes() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (8, 8), (200, 30, 30)).save(buffer, format="JPEG")
    return buffer.getvalue()


def _segment(body: bytes) -> bytes:
    length = len(body) + 2
    return b"\xff\xfe" + bytes([length >> 8, length & 0xFF]) + body


def _with_comments(*bodies: bytes) -> bytes:
    data = _jpeg_bytes()
    return data[:2] + b"".join(_segment(body) for body in bodies) + data[2:]


def _metadata_body(metadata: dict) -> bytes:
    return b"WATERMARK:" + base64.b64encode(json.dumps(metadata).encode())


@pytest.fixture
def jpeg_file(tmp_path):
    path = tmp_path / "photo.jpg"
    path.write_bytes(_jpeg_bytes())
    return path


def test_registered_under_jpg(jpeg_file):
    assert JPGWatermarker.file_type == "jpg"
    with pytest.raises(WatermarkError, match="未找到水印数据"):
        get_watermarker("jpg").extract_watermark(jpeg_file)


def test_metadata_defaults():
    metadata = WatermarkMetadata()
    assert (metadata.timestamp, metadata.checksum, metadata.content) == (0, "", "")


def test_add_watermark_reports_encryption_failure(jpeg_file, tmp_path):
    output = tmp_path / "out.jpg"
    with pytest.raises(WatermarkError, match="加密水印失败"):
        JPGWatermarker().add_watermark(jpeg_file, output, "hello")
    assert output.read_bytes() == b""


def test_add_watermark_rejects_non_image(tmp_path):
    source = tmp_path / "text.jpg"
    source.write_bytes(b"not an image at all")
    with pytest.raises(WatermarkError, match="解码图片失败"):
        JPGWatermarker().add_watermark(source, tmp_path / "out.jpg", "hello")


def test_add_watermark_missing_input(tmp_path):
    with pytest.raises(WatermarkError, match="输入文件不存在"):
        JPGWatermarker().add_watermark(tmp_path / "nope.jpg", tmp_path / "out.jpg", "x")


def test_extract_missing_input(tmp_path):
    with pytest.raises(WatermarkError, match="输入文件不存在"):
        JPGWatermarker().extract_watermark(tmp_path / "nope.jpg")


def test_extract_rejects_non_jpeg(tmp_path):
    source = tmp_path / "fake.jpg"
    source.write_bytes(b"\x89PNG\r\n\x1a\n")
    with pytest.raises(WatermarkError, match="无效的JPEG文件格式"):
        JPGWatermarker().extract_watermark(source)


def test_extract_without_comment(jpeg_file):
    with pytest.raises(WatermarkError, match="未找到水印数据"):
        JPGWatermarker().extract_watermark(jpeg_file)


def test_extract_ignores_unrelated_comment(tmp_path):
    source = tmp_path / "commented.jpg"
    source.write_bytes(_with_comments(b"made with a camera"))
    with pytest.raises(WatermarkError, match="未找到水印数据"):
        JPGWatermarker().extract_watermark(source)


def test_extract_bad_base64(tmp_path):
    source = tmp_path / "bad64.jpg"
    source.write_bytes(_with_comments(b"WATERMARK:***"))
    with pytest.raises(WatermarkError, match="解码水印元数据失败"):
        JPGWatermarker().extract_watermark(source)


def test_extract_bad_json(tmp_path):
    source = tmp_path / "badjson.jpg"
    source.write_bytes(_with_comments(b"WATERMARK:" + base64.b64encode(b"{oops")))
    with pytest.raises(WatermarkError, match="解析水印元数据失败"):
        JPGWatermarker().extract_watermark(source)


def test_extract_wrong_field_type(tmp_path):
    body = _metadata_body({"timestamp": "soon", "checksum": "", "content": ""})
    source = tmp_path / "badtype.jpg"
    source.write_bytes(_with_comments(body))
    with pytest.raises(WatermarkError, match="解析水印元数据失败"):
        JPGWatermarker().extract_watermark(source)


def test_extract_reaches_decryption_after_skipping_comments(tmp_path):
    content = base64.b64encode(bytes(range(40))).decode()
    body = _metadata_body({"timestamp": 1700000000, "checksum": "abc", "content": content})
    source = tmp_path / "marked.jpg"
    source.write_bytes(_with_comments(b"first comment", body))
    with pytest.raises(WatermarkError, match="解密水印失败"):
        JPGWatermarker().extract_watermark(source)