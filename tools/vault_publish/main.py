#!/usr/bin/env python3
"""
Obsidian vault -> static-site content exporter.

- Notes       -> <content_dir>/<slug>.md
- Attachments -> <image_dir>/<slug>.webp (raster) or <slug>.<ext> (svg, bmp, webp)

Key features:
- CJK-aware slugs (one pinyin syllable per ideograph) or plain sanitizing
- `![[file.png]]` embeds rewritten to `![file.png](/image/<slug>.webp)`,
  always matching the file the attachment stage writes
- Vault read from a local folder or a GitHub repository (REST API)
- Per-file failures reported and counted, never fatal
"""

from __future__ import annotations

import argparse
import pathlib
import sys
from typing import Optional, Sequence

from dotenv import load_dotenv

from .config import DEFAULT_CONFIG_NAME, ConfigError, load_config
from .pipeline import run_export
from .providers import ProviderError


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-publish",
        description="Export an Obsidian vault for static-site publishing",
    )
    parser.add_argument(
        "--config",
        type=pathlib.Path,
        default=pathlib.Path(DEFAULT_CONFIG_NAME),
        help=f"YAML settings file (default: {DEFAULT_CONFIG_NAME})",
    )
    parser.add_argument(
        "--workers",
        type=int,
        help="Number of files processed in parallel",
    )
    parser.add_argument(
        "--no-clean",
        action="store_true",
        help="Keep existing output folders instead of clearing them",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 2 when any file failed",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    load_dotenv(override=False)

    try:
        config = load_config(args.config)
        if args.workers is not None:
            if args.workers < 1:
                raise ConfigError("--workers must be >= 1")
            config.workers = args.workers
        if args.no_clean:
            config.clean = False
    except ConfigError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    try:
        stats = run_export(config)
    except ProviderError as exc:
        print(f"ERROR: could not list vault contents: {exc}", file=sys.stderr)
        return 1

    if args.strict and stats.failed:
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
