# docmark

docmark is a library that hides a short text watermark inside a file and
reads it back later, together with the time it was added. The watermark is
kept in the file's metadata or in places a reader ignores, so the visible
content stays the same.

Supported file types: `pdf`, `docx`, `xlsx`, `odt`, `rtf`, `jpg`, `png`.

## Installation

```
pip install .
```

## Usage

Each file type has a handler class with two methods:

- `add_watermark(input_file, output_file, watermark_text)` writes a
  watermarked copy of `input_file` to `output_file`.
- `extract_watermark(input_file)` returns a tuple `(text, timestamp)`.

```python
from docmark.pdf import PDFWatermarker

marker = PDFWatermarker()
marker.add_watermark("report.pdf", "report-marked.pdf", "Internal use only")
text, timestamp = marker.extract_watermark("report-marked.pdf")
```

| Module           | Class             | Type   |
|------------------|-------------------|--------|
| `docmark.pdf`    | `PDFWatermarker`  | `pdf`  |
| `docmark.png`    | `PNGWatermarker`  | `png`  |
| `docmark.jpg`    | `JPGWatermarker`  | `jpg`  |
| `docmark.rtf`    | `RTFWatermarker`  | `rtf`  |
| `docmark.odt`    | `ODTWatermarker`  | `odt`  |
| `docmark.xlsx`   | `XLSXWatermarker` | `xlsx` |
| `docmark.docx`   | `DOCXWatermarker` | `docx` |

### Looking up a handler by file type

Importing a handler module registers an instance of its class in
`docmark.registry`. After that it can be found by file type:

```python
import docmark.docx
import docmark.pdf
from docmark.registry import get_watermarker, registered_types

registered_types()              # ['docx', 'pdf']
handler = get_watermarker("pdf")
get_watermarker("txt")          # None
```

`register_watermarker(watermarker)` adds your own subclass of
`docmark.registry.Watermarker`, keyed by its `file_type` class attribute.

### Errors

Every failure inside a handler (missing file, wrong format, no watermark
found, a checksum that does not match) raises
`docmark.registry.WatermarkError`.

## How each format stores the watermark

- **pdf**: a line `%WATERMARK_BEGIN:<base64 text>|<time>:WATERMARK_END%`
  inserted before the last `trailer` keyword, or appended to the file.
  The timestamp is an RFC 3339 time.
- **png**: the image is re-encoded with Pillow and a marker
  `<!--WATERMARK_BEGIN:<base64 text>|<time>:WATERMARK_END-->` is appended
  after the image data. The timestamp is an RFC 3339 time.
- **jpg**: the image is re-encoded as JPEG at quality 95 and a comment
  segment holding base64 JSON (`timestamp`, `checksum`, `content`) is put
  right after the start-of-image marker. The timestamp is Unix seconds.
- **rtf**: a hidden group `{\*\watermark-data ...}` is inserted after the
  `\info` block, or before `\deff` / `\deflang`, or right after `{\rtf1`.
  The timestamp is Unix seconds.
- **odt**: an extra archive entry `watermark-data.xml` holds the timestamp
  (Unix seconds), the checksum and the encrypted text.
- **xlsx**: the marker is injected into `docProps/core.xml`,
  `xl/workbook.xml` and `xl/sharedStrings.xml`, whichever exist; extraction
  tries them in that order. The timestamp is an RFC 3339 time.
- **docx**: `Watermark:<text>` is added to the keywords in
  `docProps/core.xml` and a comment `<!-- Watermark: <text> -->` is put
  after `<w:body>`. Reading from the keywords stops at the first space, so
  a watermark with spaces comes back whole only from the body comment when
  the document has no core properties. No time is stored; extraction
  returns the current time unless a `TimeStamp:` entry is present.

For jpg, rtf and odt the text is encrypted with AES-GCM, for xlsx with
AES-CFB, and each carries an MD5 checksum; extraction fails if the data has
been altered. The keys are built into the package, so this guards against
casual inspection and tampering, not against a determined reader.

The helpers behind this are public: `docmark.cipher` (`seal_gcm`,
`open_gcm`, `cfb_encrypt`, `cfb_decrypt`, `md5_checksum`) and
`docmark.archive` (`unzip_file`, `zip_dir`, `add_keyword_watermark`,
`find_core_value`, `find_comment_value`).

## What docmark does not do

- It has no command-line tool and no web server; it is used from Python.
- It does not handle PowerPoint (`pptx`) files.
- The handlers do not check the input file's size or the length of the
  watermark text, and they do not reject empty text. Do such checks before
  calling them if you need limits.

## Running the tests

```
pip install ".[test]"
pytest
```