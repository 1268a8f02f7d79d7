from __future__ import annotations

from dataclasses import dataclass, field
from typing import FrozenSet

# ---------- Actions

COPY_VERBATIM = "copy-verbatim"
COPY_AS_IS = "copy-as-is"
TRANSCODE = "transcode"
SKIP = "skip"


def _norm_ext(ext: str) -> str:
    return (ext or "").strip().lower().lstrip(".")


@dataclass(frozen=True)
class FormatTable:
    """
    Which attachment extensions get transcoded and which are copied as-is.

    - `convertible`: raster formats re-encoded to `target`.
    - `opaque`: formats never run through the encoder (copied byte for byte).
    - `target` inputs are already web-ready and are copied unchanged.
    """

    convertible: FrozenSet[str] = field(
        default_factory=lambda: frozenset(
            {"jpg", "jpeg", "png", "gif", "tiff", "avif"}
        )
    )
    opaque: FrozenSet[str] = field(
        default_factory=lambda: frozenset({"svg", "bmp"})
    )
    target: str = "webp"
    quality: int = 80

    def __post_init__(self) -> None:
        conv = frozenset(_norm_ext(e) for e in self.convertible)
        opq = frozenset(_norm_ext(e) for e in self.opaque)
        target = _norm_ext(self.target)
        if not target:
            raise ValueError("target format must not be empty")
        if conv & opq:
            raise ValueError(
                f"convertible and opaque overlap: {sorted(conv & opq)}"
            )
        if target in conv or target in opq:
            raise ValueError(f"target '{target}' listed as a source format")
        if not 0 < self.quality <= 100:
            raise ValueError(f"quality must be in 1..100, got {self.quality}")
        object.__setattr__(self, "convertible", conv)
        object.__setattr__(self, "opaque", opq)
        object.__setattr__(self, "target", target)


DEFAULT_FORMATS = FormatTable()


@dataclass(frozen=True)
class TranscodeDecision:
    action: str
    extension: str

    @property
    def output_extension(self) -> str:
        return self.extension

    @property
    def skipped(self) -> bool:
        return self.action == SKIP


def decide(ext: str, formats: FormatTable = DEFAULT_FORMATS) -> TranscodeDecision:
    """Map a source extension to what the attachment stage will do with it."""
    e = _norm_ext(ext)
    if e == formats.target:
        return TranscodeDecision(COPY_AS_IS, e)
    if e in formats.opaque:
        return TranscodeDecision(COPY_VERBATIM, e)
    if e in formats.convertible:
        return TranscodeDecision(TRANSCODE, formats.target)
    return TranscodeDecision(SKIP, e)


def output_extension(ext: str, formats: FormatTable = DEFAULT_FORMATS) -> str:
    return decide(ext, formats).output_extension
