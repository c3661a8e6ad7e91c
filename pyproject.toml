[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "docmark"
version = "0.1.0"
description = "Add and extract hidden text watermarks in PDF, Word, Excel, OpenDocument, RTF and image files"
requires-python = ">=3.10"
keywords = ["watermark", "pdf", "docx", "xlsx", "odt", "rtf", "png", "jpg", "metadata"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Office/Business",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "cryptography",
    "pillow",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["docmark"]

[tool.pytest.ini_options]
addopts = "-ra"
