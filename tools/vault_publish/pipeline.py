from __future__ import annotations

import pathlib
import sys
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from .assets import write_attachment
from .config import ASSET_PLACEHOLDER, ExportConfig
from .markdown_processing import EmbedTarget, embed_target, find_embeds
from .naming import NameStrategy, get_name_strategy
from .notes import export_note, note_slug
from .providers import ContentProvider, SourceFile, make_provider
from .utils import clear_dir, ensure_dir

WRITTEN = "written"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class ExportStats:
    notes_attempted: int = 0
    notes_written: int = 0
    notes_failed: int = 0
    attachments_attempted: int = 0
    attachments_written: int = 0
    attachments_skipped: int = 0
    attachments_failed: int = 0
    failures: List[Tuple[str, str]] = field(default_factory=list)
    dangling: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return self.notes_failed + self.attachments_failed

    def summary(self) -> str:
        return (
            f"notes {self.notes_written}/{self.notes_attempted} written"
            f" ({self.notes_failed} failed), attachments"
            f" {self.attachments_written}/{self.attachments_attempted} written"
            f" ({self.attachments_skipped} skipped,"
            f" {self.attachments_failed} failed),"
            f" {len(self.dangling)} dangling embeds"
        )


@dataclass
class ItemResult:
    status: str
    detail: str = ""
    missing: List[str] = field(default_factory=list)


@dataclass
class PlannedItem:
    source: SourceFile
    out_path: Optional[pathlib.Path]
    target: Optional[EmbedTarget] = None
    conflict: Optional[str] = None


def _claim(
    claimed: Dict[pathlib.Path, str], item: PlannedItem
) -> PlannedItem:
    if item.out_path is None:
        return item
    owner = claimed.get(item.out_path)
    if owner is not None:
        item.conflict = owner
    else:
        claimed[item.out_path] = item.source.path
    return item


def plan_attachments(
    files: List[SourceFile],
    out_dir: pathlib.Path,
    name_strategy: NameStrategy,
    config: ExportConfig,
    claimed: Dict[pathlib.Path, str],
) -> List[PlannedItem]:
    """
    Output path per attachment, or None for files that are not exported
    (extension not enumerated, or a format the policy skips).
    """
    listed = set(config.attachment_extensions)
    items = []
    for source in files:
        target = embed_target(source.filename, name_strategy, config.formats)
        if target.placeholder:
            print(
                f"! '{source.filename}' has no usable name,"
                f" using '{ASSET_PLACEHOLDER}'"
            )
        exported = source.extension in listed and not target.decision.skipped
        out = out_dir / target.filename if exported else None
        items.append(_claim(claimed, PlannedItem(source, out, target)))
    return items


def plan_notes(
    files: List[SourceFile],
    out_dir: pathlib.Path,
    name_strategy: NameStrategy,
    claimed: Dict[pathlib.Path, str],
) -> List[PlannedItem]:
    items = []
    for source in files:
        out = out_dir / f"{note_slug(source, name_strategy)}.md"
        items.append(_claim(claimed, PlannedItem(source, out)))
    return items


class Exporter:
    """
    One export run: plan output names, clear the output folders, then write
    attachments followed by notes.

    A failure on one file is reported and counted; it never stops the batch.
    """

    def __init__(
        self,
        config: ExportConfig,
        provider: Optional[ContentProvider] = None,
    ) -> None:
        self.config = config
        self.provider = provider or make_provider(config)
        self.name_strategy = get_name_strategy(config.naming)
        self.stats = ExportStats()
        self._produced: Set[str] = set()

    def _fail(self, source: SourceFile, exc: BaseException) -> ItemResult:
        print(f"! failed {source.path}: {exc}", file=sys.stderr)
        return ItemResult(FAILED, f"{exc}")

    def _conflict(self, item: PlannedItem) -> ItemResult:
        return self._fail(
            item.source,
            FileExistsError(
                f"{item.out_path.name} already produced by {item.conflict}"
            ),
        )

    def _attachment(self, item: PlannedItem) -> ItemResult:
        if item.conflict:
            return self._conflict(item)
        if item.out_path is None:
            print(f"- unknown format: {item.source.path}, skipping")
            return ItemResult(SKIPPED)
        try:
            data = self.provider.read_bytes(item.source)
            write_attachment(
                data, item.target, self.config.image_dir, self.config.formats
            )
        except Exception as exc:
            return self._fail(item.source, exc)
        return ItemResult(WRITTEN, item.target.filename)

    def _note(self, item: PlannedItem) -> ItemResult:
        if item.conflict:
            return self._conflict(item)
        try:
            text = self.provider.read_text(item.source)
            export_note(
                text,
                item.out_path,
                name_strategy=self.name_strategy,
                formats=self.config.formats,
                url_prefix=self.config.url_prefix,
                preserve_code=self.config.preserve_code,
            )
        except Exception as exc:
            return self._fail(item.source, exc)
        missing = [
            target.filename
            for target in (
                embed_target(
                    t.original_file_name, self.name_strategy, self.config.formats
                )
                for t in find_embeds(text, self.config.preserve_code)
            )
            if target.filename not in self._produced
        ]
        return ItemResult(WRITTEN, item.out_path.name, missing)

    def _run_all(
        self, fn: Callable[[PlannedItem], ItemResult], items: List[PlannedItem]
    ) -> List[ItemResult]:
        if self.config.workers <= 1 or len(items) <= 1:
            return [fn(item) for item in items]
        # output paths are unique after planning, so tasks never share a file
        with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
            return list(pool.map(fn, items))

    def run(self) -> ExportStats:
        cfg = self.config
        notes = self.provider.notes()
        attachments = self.provider.attachments()

        claimed: Dict[pathlib.Path, str] = {}
        att_items = plan_attachments(
            attachments, cfg.image_dir, self.name_strategy, cfg, claimed
        )
        note_items = plan_notes(notes, cfg.content_dir, self.name_strategy, claimed)

        if cfg.clean:
            clear_dir(cfg.content_dir)
            clear_dir(cfg.image_dir)
        ensure_dir(cfg.content_dir)
        ensure_dir(cfg.image_dir)

        s = self.stats
        print(f"- processing {len(att_items)} attachments")
        s.attachments_attempted = len(att_items)
        for item, res in zip(att_items, self._run_all(self._attachment, att_items)):
            if res.status == WRITTEN:
                s.attachments_written += 1
                self._produced.add(res.detail)
            elif res.status == SKIPPED:
                s.attachments_skipped += 1
            else:
                s.attachments_failed += 1
                s.failures.append((item.source.path, res.detail))

        print(f"- processing {len(note_items)} notes")
        s.notes_attempted = len(note_items)
        for item, res in zip(note_items, self._run_all(self._note, note_items)):
            if res.status == WRITTEN:
                s.notes_written += 1
                s.dangling.extend((item.source.path, f) for f in res.missing)
            else:
                s.notes_failed += 1
                s.failures.append((item.source.path, res.detail))

        for note_path, filename in s.dangling:
            print(f"! {note_path} links missing attachment {filename}")
        print(f"= {s.summary()}")
        return s


def run_export(
    config: ExportConfig, provider: Optional[ContentProvider] = None
) -> ExportStats:
    return Exporter(config, provider).run()
