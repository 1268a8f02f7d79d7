from __future__ import annotations

import pathlib

from .config import IMAGE_URL_PREFIX, NOTE_PLACEHOLDER
from .markdown_processing import rewrite_links
from .naming import NameStrategy, transliterate_slug
from .policy import DEFAULT_FORMATS, FormatTable
from .providers import SourceFile
from .utils import ensure_dir


def note_slug(
    source: SourceFile, name_strategy: NameStrategy = transliterate_slug
) -> str:
    slug = name_strategy(source.raw_name)
    if not slug:
        print(f"! '{source.path}' has no usable name, using '{NOTE_PLACEHOLDER}'")
        return NOTE_PLACEHOLDER
    return slug


def export_note(
    text: str,
    out_path: pathlib.Path,
    name_strategy: NameStrategy = transliterate_slug,
    formats: FormatTable = DEFAULT_FORMATS,
    url_prefix: str = IMAGE_URL_PREFIX,
    preserve_code: bool = False,
) -> pathlib.Path:
    body = rewrite_links(
        text,
        name_strategy=name_strategy,
        formats=formats,
        url_prefix=url_prefix,
        preserve_code=preserve_code,
    )
    ensure_dir(out_path.parent)
    out_path.write_bytes(body.encode("utf-8"))
    print(f"✓ exported note {out_path.name}")
    return out_path
