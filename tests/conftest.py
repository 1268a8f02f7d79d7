from __future__ import annotations

import io
import pathlib

import pytest
from PIL import Image

from vault_publish.config import ExportConfig


def image_bytes(fmt: str = "PNG", size=(8, 6), mode="RGB", color=(200, 30, 30)) -> bytes:
    buf = io.BytesIO()
    Image.new(mode, size, color).save(buf, format=fmt)
    return buf.getvalue()


def write(path: pathlib.Path, data) -> pathlib.Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    if isinstance(data, str):
        path.write_bytes(data.encode("utf-8"))
    else:
        path.write_bytes(data)
    return path


NOTE_BODY = (
    "# 我的笔记\n"
    "\n"
    "![[photo.png]]\n"
    "![[diagram.svg]] and ![[Attachment/sub/Pic One.webp]]\n"
    "[ordinary](https://example.com) ![alt](local.png)\n"
    "![[weird.xyz]]\n"
)


@pytest.fixture
def vault(tmp_path: pathlib.Path) -> pathlib.Path:
    root = tmp_path / "obsidian"
    write(root / "Blog" / "我的笔记.md", NOTE_BODY)
    write(root / "Blog" / "nested" / "Hello World!.md", "plain text\r\nno embeds\n")
    write(root / "Blog" / "draft.txt", "not a note")
    write(root / "Attachment" / "photo.png", image_bytes("PNG"))
    write(
        root / "Attachment" / "diagram.svg",
        '<svg xmlns="http://www.w3.org/2000/svg" width="4" height="4"/>',
    )
    write(root / "Attachment" / "sub" / "Pic One.webp", image_bytes("WEBP"))
    write(root / "Attachment" / "weird.xyz", b"\x00\x01")
    return root


@pytest.fixture
def export_config(tmp_path: pathlib.Path, vault: pathlib.Path) -> ExportConfig:
    return ExportConfig(
        vault_dir=vault,
        content_dir=tmp_path / "output" / "content",
        image_dir=tmp_path / "output" / "image",
    )
