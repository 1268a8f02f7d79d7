from __future__ import annotations

import io
import pathlib
from typing import Optional

from PIL import Image

from .markdown_processing import EmbedTarget
from .policy import COPY_AS_IS, COPY_VERBATIM, DEFAULT_FORMATS, SKIP, FormatTable
from .utils import ensure_dir

_PIL_FORMATS = {"webp": "WEBP", "png": "PNG", "jpg": "JPEG", "jpeg": "JPEG"}


def _flatten_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA"):
        return img
    if img.mode in ("P", "LA", "PA") or "transparency" in img.info:
        return img.convert("RGBA")
    return img.convert("RGB")


def transcode_image(
    data: bytes, target: str = "webp", quality: int = 80
) -> bytes:
    """
    Re-encode raster bytes to `target`. Animated inputs (GIF) keep all
    frames when the target can store them.

    Raises PIL.UnidentifiedImageError / OSError on undecodable input.
    """
    fmt = _PIL_FORMATS.get(target.lower(), target.upper())
    out = io.BytesIO()
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if getattr(img, "is_animated", False) and fmt == "WEBP":
            # the WebP writer converts each frame itself
            img.save(
                out,
                format=fmt,
                quality=quality,
                save_all=True,
                duration=img.info.get("duration", 100),
                loop=img.info.get("loop", 0),
            )
            return out.getvalue()
        frame = _flatten_mode(img)
        if fmt == "JPEG" and frame.mode == "RGBA":
            frame = frame.convert("RGB")
        frame.save(out, format=fmt, quality=quality)
    return out.getvalue()


def write_attachment(
    data: bytes,
    target: EmbedTarget,
    out_dir: pathlib.Path,
    formats: FormatTable = DEFAULT_FORMATS,
) -> Optional[pathlib.Path]:
    """
    Persist one attachment under `out_dir/<target.filename>`.

    Returns the written path, or None for formats the table does not know
    (a warning is printed; nothing is written).
    """
    decision = target.decision
    if decision.action == SKIP:
        print(f"- unknown format: {target.original}, skipping")
        return None

    ensure_dir(out_dir)
    out_path = out_dir / target.filename

    if decision.action in (COPY_VERBATIM, COPY_AS_IS):
        out_path.write_bytes(data)
        print(f"✓ copied {target.original} -> {target.filename}")
        return out_path

    out_path.write_bytes(
        transcode_image(data, formats.target, formats.quality)
    )
    print(f"✓ compressed {target.original} -> {target.filename}")
    return out_path
