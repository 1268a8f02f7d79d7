from __future__ import annotations

from dataclasses import dataclass
from typing import List

from .config import ASSET_PLACEHOLDER, FENCE, IMAGE_URL_PREFIX, WIKI_EMBED
from .naming import NameStrategy, transliterate_slug
from .policy import DEFAULT_FORMATS, FormatTable, TranscodeDecision, decide
from .utils import final_segment, split_name


@dataclass(frozen=True)
class EmbedToken:
    raw_token: str
    original_file_name: str


@dataclass(frozen=True)
class EmbedTarget:
    """Where an attachment named `original` ends up after export."""

    original: str
    slug: str
    decision: TranscodeDecision
    placeholder: bool = False

    @property
    def filename(self) -> str:
        ext = self.decision.output_extension
        return f"{self.slug}.{ext}" if ext else self.slug

    def href(self, url_prefix: str = IMAGE_URL_PREFIX) -> str:
        return f"{url_prefix.rstrip('/')}/{self.filename}"


def embed_target(
    name: str,
    name_strategy: NameStrategy = transliterate_slug,
    formats: FormatTable = DEFAULT_FORMATS,
) -> EmbedTarget:
    """
    Resolve an attachment filename (optionally with a path prefix) to its
    output slug and transcode decision.

    The attachment stage and the link rewriter both go through here, so a
    link always names the file that gets written. An empty slug is replaced
    by the `asset` placeholder; `placeholder` tells callers it happened.
    """
    original = final_segment(name)
    stem, ext = split_name(original)
    slug = name_strategy(stem)
    return EmbedTarget(
        original,
        slug or ASSET_PLACEHOLDER,
        decide(ext, formats),
        placeholder=not slug,
    )


def map_noncode(md: str, fn):
    parts, last = [], 0
    for m in FENCE.finditer(md):
        pre = md[last : m.start()]
        parts.append(fn(pre))
        parts.append(md[m.start() : m.end()])
        last = m.end()
    parts.append(fn(md[last:]))
    return "".join(parts)


def find_embeds(md: str, preserve_code: bool = False) -> List[EmbedToken]:
    """Embeds in `md`; with `preserve_code`, those inside fenced code are left out."""
    found: List[EmbedToken] = []

    def _collect(s: str) -> str:
        found.extend(
            EmbedToken(m.group(0), final_segment(m.group("name")))
            for m in WIKI_EMBED.finditer(s)
        )
        return s

    if preserve_code:
        map_noncode(md, _collect)
    else:
        _collect(md)
    return found


def rewrite_links(
    md: str,
    name_strategy: NameStrategy = transliterate_slug,
    formats: FormatTable = DEFAULT_FORMATS,
    url_prefix: str = IMAGE_URL_PREFIX,
    preserve_code: bool = False,
) -> str:
    """
    Rewrite Obsidian embeds `![[name.ext]]` to `![name.ext](/image/<slug>.<ext>)`.

    The alt text keeps the original filename; only the href is normalized.
    Everything outside the embeds is returned unchanged. With `preserve_code`
    embeds inside fenced code blocks are left alone.
    """

    def _repl(m):
        target = embed_target(m.group("name"), name_strategy, formats)
        if target.decision.skipped:
            print(
                f"! embed '{target.original}' has unsupported format,"
                f" link {target.href(url_prefix)} will dangle"
            )
        return f"![{target.original}]({target.href(url_prefix)})"

    def _sub(s: str) -> str:
        return WIKI_EMBED.sub(_repl, s)

    if preserve_code:
        return map_noncode(md, _sub)
    return _sub(md)
