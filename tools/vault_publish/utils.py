from __future__ import annotations

import pathlib
import re
import shutil
from typing import Tuple


def natural_key(s: str):
    return [int(t) if t.isdigit() else t for t in re.split(r'(\d+)', s.lower())]


def final_segment(path: str) -> str:
    return re.split(r"[\\/]", path)[-1]


def split_name(filename: str) -> Tuple[str, str]:
    """
    Split on the last dot: ("photo.v2", "png"). The extension is lower-cased
    and is "" when there is no dot.
    """
    stem, dot, ext = filename.rpartition(".")
    if not dot:
        return filename, ""
    return stem, ext.lower()


def ensure_dir(p: pathlib.Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def clear_dir(p: pathlib.Path) -> None:
    if p.exists():
        shutil.rmtree(p)
    print(f"- cleared {p}")
