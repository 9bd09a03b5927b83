"""
Shared fixtures for llweb_packager tests.

Archives are built in memory with zipfile; a value of None marks a directory
entry.
"""

import io
import zipfile

import pytest

from llweb_packager.records import SourceFile


def build_zip(entries, *, stored=False):
    buf = io.BytesIO()
    compression = zipfile.ZIP_STORED if stored else zipfile.ZIP_DEFLATED
    with zipfile.ZipFile(buf, "w", compression=compression) as zf:
        for name, content in entries.items():
            if content is None:
                zf.writestr(name if name.endswith("/") else name + "/", b"")
            elif isinstance(content, str):
                zf.writestr(name, content.encode("utf-8"))
            else:
                zf.writestr(name, content)
    return buf.getvalue()


def read_zip(data):
    """Map of name -> bytes (None for directories) for an archive."""
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {
            info.filename: None if info.is_dir() else zf.read(info)
            for info in zf.infolist()
        }


@pytest.fixture
def make_zip():
    return build_zip


@pytest.fixture
def unzip():
    return read_zip


@pytest.fixture
def binary_payload():
    return bytes(range(256)) * 4


@pytest.fixture
def site_html():
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        "<title>Panel</title>\n"
        '<link rel="stylesheet" href="https://fonts.googleapis.com/css?family=Roboto">\n'
        '<link rel="stylesheet" href="style.css">\n'
        "</head>\n"
        "<body>\n"
        '<img src="public/logo.png">\n'
        '<input nv="A1">\n'
        "</body>\n"
        "</html>\n"
    )


@pytest.fixture
def mapping_csv():
    return SourceFile(
        filename="mapping.csv",
        data=b"Name,Address,Format\nTemperature,A1,xxx.y\nMode,A2,\n",
    )
