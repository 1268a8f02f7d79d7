#!/usr/bin/env python3
from __future__ import annotations

import os
import pathlib
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import yaml

from .policy import DEFAULT_FORMATS, FormatTable

# ---------- Paths

DEFAULT_CONFIG_NAME = "vault-publish.yml"
DEFAULT_VAULT_DIR = "obsidian"
DEFAULT_CONTENT_OUT = pathlib.Path("output") / "content"
DEFAULT_IMAGE_OUT = pathlib.Path("output") / "image"

# ---------- Config

NOTES_DIR_NAME = "Blog"
ATTACHMENTS_DIR_NAME = "Attachment"
NOTE_EXTENSIONS = ("md",)
ATTACHMENT_EXTENSIONS = ("png", "jpg", "jpeg", "gif", "bmp", "svg", "webp")
IMAGE_URL_PREFIX = "/image"
NOTE_PLACEHOLDER = "untitled"
ASSET_PLACEHOLDER = "asset"

PROVIDERS = ("filesystem", "github")
NAME_STRATEGY_NAMES = ("transliterate", "sanitize")
GITHUB_API = "https://api.github.com"
GITHUB_TOKEN_ENV = "GITHUB_TOKEN"

# Some shared regexes

WIKI_EMBED = re.compile(r"!\[\[(?P<name>[^\]]+)\]\]")
NOTE_SUFFIX = re.compile(r"\.(md|markdown)$", re.IGNORECASE)
CJK_IDEOGRAPH = re.compile(r"[\u4e00-\u9fa5]")
ASCII_ALNUM = re.compile(r"[a-zA-Z0-9]")
FENCE = re.compile(r"(^```.*?$)(.*?)(^```$)",
                   re.MULTILINE | re.DOTALL)


class ConfigError(ValueError):
    """Configuration is missing or invalid; nothing may be processed."""


@dataclass
class GitHubSource:
    owner: str
    repo: str
    ref: str
    token: str = field(repr=False)
    api_base: str = GITHUB_API


@dataclass
class ExportConfig:
    provider: str = "filesystem"
    vault_dir: pathlib.Path = pathlib.Path(DEFAULT_VAULT_DIR)
    notes_dir: str = NOTES_DIR_NAME
    attachments_dir: str = ATTACHMENTS_DIR_NAME
    attachment_extensions: tuple = ATTACHMENT_EXTENSIONS
    github: Optional[GitHubSource] = None
    content_dir: pathlib.Path = DEFAULT_CONTENT_OUT
    image_dir: pathlib.Path = DEFAULT_IMAGE_OUT
    url_prefix: str = IMAGE_URL_PREFIX
    clean: bool = True
    naming: str = "transliterate"
    formats: FormatTable = DEFAULT_FORMATS
    preserve_code: bool = False
    workers: int = 1


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def _resolve(base: pathlib.Path, value: Any) -> pathlib.Path:
    p = pathlib.Path(str(value)).expanduser()
    return p if p.is_absolute() else (base / p)


def _github_source(
    raw: Dict[str, Any], env: Dict[str, str]
) -> GitHubSource:
    token_env = raw.get("token_env") or GITHUB_TOKEN_ENV
    values = {
        "owner": raw.get("owner") or env.get("GITHUB_OWNER"),
        "repo": raw.get("repo") or env.get("GITHUB_REPO"),
        "ref": raw.get("ref") or env.get("GITHUB_REF_NAME"),
        "token": env.get(token_env),
    }
    missing = [k for k, v in values.items() if not v]
    if missing:
        names = ", ".join(
            token_env if k == "token" else f"github.{k}" for k in missing
        )
        raise ConfigError(f"github provider requires: {names}")
    return GitHubSource(
        owner=str(values["owner"]),
        repo=str(values["repo"]),
        ref=str(values["ref"]),
        token=str(values["token"]),
        api_base=str(raw.get("api_base") or GITHUB_API).rstrip("/"),
    )


def _ext_list(raw: Dict[str, Any], key: str, default) -> frozenset:
    value = raw.get(key, default)
    if not isinstance(value, (list, tuple, set, frozenset)):
        raise ConfigError(f"formats.{key} must be a list of extensions")
    return frozenset(str(e) for e in value)


def _format_table(raw: Dict[str, Any]) -> FormatTable:
    if not raw:
        return DEFAULT_FORMATS
    convertible = _ext_list(raw, "convertible", DEFAULT_FORMATS.convertible)
    opaque = _ext_list(raw, "opaque", DEFAULT_FORMATS.opaque)
    try:
        return FormatTable(
            convertible=convertible,
            opaque=opaque,
            target=str(raw.get("target", DEFAULT_FORMATS.target)),
            quality=int(raw.get("quality", DEFAULT_FORMATS.quality)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid formats: {exc}") from exc


def config_from_dict(
    data: Dict[str, Any],
    base_dir: pathlib.Path,
    env: Optional[Dict[str, str]] = None,
) -> ExportConfig:
    """
    Build an ExportConfig from the parsed YAML mapping.

    Relative paths are resolved against `base_dir` (the config file's folder).
    Secrets are looked up in `env` (defaults to os.environ).
    """
    env = dict(os.environ) if env is None else env
    if not isinstance(data, dict):
        raise ConfigError("config root must be a mapping")

    source = _section(data, "source")
    output = _section(data, "output")

    provider = str(source.get("provider") or "filesystem").lower()
    if provider not in PROVIDERS:
        raise ConfigError(
            f"unknown provider '{provider}' (expected one of {PROVIDERS})"
        )

    naming = str(data.get("naming") or "transliterate").lower()
    if naming not in NAME_STRATEGY_NAMES:
        raise ConfigError(
            f"unknown naming strategy '{naming}'"
            f" (expected one of {NAME_STRATEGY_NAMES})"
        )

    github = None
    if provider == "github":
        github = _github_source(_section(source, "github"), env)

    try:
        workers = int(data.get("workers", 1))
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"workers must be an integer: {exc}") from exc
    if workers < 1:
        raise ConfigError("workers must be >= 1")

    exts = source.get("attachment_extensions") or ATTACHMENT_EXTENSIONS

    return ExportConfig(
        provider=provider,
        vault_dir=_resolve(base_dir, source.get("path") or DEFAULT_VAULT_DIR),
        notes_dir=str(source.get("notes_dir") or NOTES_DIR_NAME),
        attachments_dir=str(
            source.get("attachments_dir") or ATTACHMENTS_DIR_NAME
        ),
        attachment_extensions=tuple(str(e).lower().lstrip(".") for e in exts),
        github=github,
        content_dir=_resolve(
            base_dir, output.get("content_dir") or DEFAULT_CONTENT_OUT
        ),
        image_dir=_resolve(
            base_dir, output.get("image_dir") or DEFAULT_IMAGE_OUT
        ),
        url_prefix=str(output.get("url_prefix") or IMAGE_URL_PREFIX),
        clean=bool(output.get("clean", True)),
        naming=naming,
        formats=_format_table(_section(data, "formats")),
        preserve_code=bool(data.get("preserve_code", False)),
        workers=workers,
    )


def load_config(
    path: pathlib.Path, env: Optional[Dict[str, str]] = None
) -> ExportConfig:
    if not path.exists():
        raise ConfigError(f"{path.name} missing at {path.parent}")
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"{path.name} is not valid YAML: {exc}") from exc
    return config_from_dict(data, path.resolve().parent, env=env)
