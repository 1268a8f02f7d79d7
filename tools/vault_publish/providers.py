from __future__ import annotations

import base64
import pathlib
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import quote

import requests

from .config import NOTE_EXTENSIONS, ExportConfig, GitHubSource
from .utils import natural_key, split_name


class ProviderError(RuntimeError):
    pass


@dataclass(frozen=True)
class SourceFile:
    """A note or attachment as listed by a provider (bytes fetched lazily)."""

    path: str
    raw_name: str
    extension: str
    locator: str = ""

    @property
    def filename(self) -> str:
        return pathlib.PurePosixPath(self.path).name

    @classmethod
    def from_path(cls, path: str, locator: str = "") -> "SourceFile":
        name = pathlib.PurePosixPath(path).name
        stem, ext = split_name(name)
        return cls(path=path, raw_name=stem, extension=ext,
                   locator=locator or path)


def _sorted(files: Iterable[SourceFile]) -> List[SourceFile]:
    return sorted(files, key=lambda f: natural_key(f.path))


class ContentProvider:
    """
    Lists notes and attachments of a vault and reads their bytes.

    `attachments()` returns every file under the attachments folder; which of
    them get exported is decided by the pipeline.
    """

    name = "provider"

    def notes(self) -> List[SourceFile]:
        raise NotImplementedError

    def attachments(self) -> List[SourceFile]:
        raise NotImplementedError

    def read_bytes(self, source: SourceFile) -> bytes:
        raise NotImplementedError

    def read_text(self, source: SourceFile) -> str:
        return self.read_bytes(source).decode("utf-8")


class FilesystemProvider(ContentProvider):
    name = "filesystem"

    def __init__(
        self,
        root: pathlib.Path,
        notes_dir: str,
        attachments_dir: str,
    ) -> None:
        self.root = root
        self.notes_dir = root / notes_dir
        self.attachments_dir = root / attachments_dir

    def _walk(
        self, base: pathlib.Path, exts: Optional[Iterable[str]] = None
    ) -> List[SourceFile]:
        if not base.is_dir():
            print(f"- no {base.name}/ in {self.root}")
            return []
        exts = set(exts) if exts is not None else None
        out = []
        for p in base.rglob("*"):
            if not p.is_file():
                continue
            rel = p.relative_to(self.root).as_posix()
            source = SourceFile.from_path(rel, locator=str(p))
            if exts is None or source.extension in exts:
                out.append(source)
        return _sorted(out)

    def notes(self) -> List[SourceFile]:
        return self._walk(self.notes_dir, NOTE_EXTENSIONS)

    def attachments(self) -> List[SourceFile]:
        return self._walk(self.attachments_dir)

    def read_bytes(self, source: SourceFile) -> bytes:
        return pathlib.Path(source.locator).read_bytes()


def _to_int(val: Optional[str]) -> Optional[int]:
    if val is None:
        return None
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


class GitHubProvider(ContentProvider):
    """
    Reads a vault straight from a GitHub repository through the REST API.

    - listing: one recursive git tree call for `ref`
    - bytes: contents API (base64), falling back to `download_url` for
      files the API does not inline
    """

    name = "github"

    def __init__(
        self,
        source: GitHubSource,
        notes_dir: str,
        attachments_dir: str,
        session: Optional[requests.Session] = None,
        timeout_s: int = 30,
        max_retries: int = 4,
    ) -> None:
        self.source = source
        self.notes_prefix = notes_dir.strip("/") + "/"
        self.attachments_prefix = attachments_dir.strip("/") + "/"
        self.session = session or requests.Session()
        self.timeout_s = timeout_s
        self.max_retries = max_retries
        self._tree: Optional[List[Dict[str, Any]]] = None

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Accept": "application/vnd.github+json",
            "Authorization": f"Bearer {self.source.token}",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _repo_url(self, *parts: str) -> str:
        s = self.source
        return "/".join([s.api_base, "repos", s.owner, s.repo, *parts])

    def _get(
        self, url: str, params: Optional[Dict[str, Any]] = None
    ) -> requests.Response:
        backoff = 1.0
        for attempt in range(self.max_retries + 1):
            try:
                resp = self.session.get(
                    url,
                    headers=self.headers,
                    params=params,
                    timeout=self.timeout_s,
                )
            except requests.RequestException as exc:
                if attempt == self.max_retries:
                    raise ProviderError(
                        f"network error after retries: {exc}"
                    ) from exc
                print(f"! network error ({exc}), retry in {backoff:.1f}s")
                time.sleep(backoff)
                backoff = min(backoff * 2, 60.0)
                continue

            if resp.status_code == 200:
                return resp

            if resp.status_code in (403, 429) and (
                resp.headers.get("Retry-After")
                or resp.headers.get("X-RateLimit-Remaining") == "0"
            ):
                wait = _to_int(resp.headers.get("Retry-After")) or backoff
                if attempt == self.max_retries:
                    raise ProviderError(
                        f"rate limited after retries: {url}"
                    )
                print(f"! rate limited, sleeping {wait:.1f}s")
                time.sleep(float(wait))
                backoff = min(backoff * 2, 60.0)
                continue

            if resp.status_code in (500, 502, 503, 504):
                if attempt == self.max_retries:
                    raise ProviderError(
                        f"server error {resp.status_code} after retries: {url}"
                    )
                print(f"! server error {resp.status_code}, retry in {backoff:.1f}s")
                time.sleep(backoff)
                backoff = min(backoff * 2, 60.0)
                continue

            raise ProviderError(
                f"GET {url} failed: HTTP {resp.status_code} {resp.text[:200]}"
            )
        raise ProviderError(f"GET {url} failed")

    def _blobs(self) -> List[Dict[str, Any]]:
        if self._tree is None:
            url = self._repo_url("git", "trees", quote(self.source.ref, safe=""))
            data = self._get(url, params={"recursive": "1"}).json()
            if data.get("truncated"):
                print("! git tree listing was truncated by the API")
            self._tree = [
                e for e in data.get("tree", []) if e.get("type") == "blob"
            ]
        return self._tree

    def _select(
        self, prefix: str, exts: Optional[Iterable[str]] = None
    ) -> List[SourceFile]:
        exts = set(exts) if exts is not None else None
        out = []
        for entry in self._blobs():
            path = entry.get("path", "")
            if not path.startswith(prefix):
                continue
            source = SourceFile.from_path(path)
            if exts is None or source.extension in exts:
                out.append(source)
        return _sorted(out)

    def notes(self) -> List[SourceFile]:
        return self._select(self.notes_prefix, NOTE_EXTENSIONS)

    def attachments(self) -> List[SourceFile]:
        return self._select(self.attachments_prefix)

    def read_bytes(self, source: SourceFile) -> bytes:
        url = self._repo_url("contents", quote(source.locator))
        data = self._get(url, params={"ref": self.source.ref}).json()
        if not isinstance(data, dict):
            raise ProviderError(f"{source.path} is not a file")
        content = data.get("content")
        if content and data.get("encoding") == "base64":
            return base64.b64decode(content)
        download_url = data.get("download_url")
        if not download_url:
            raise ProviderError(f"no content for {source.path}")
        return self._get(download_url).content


def make_provider(
    config: ExportConfig, session: Optional[requests.Session] = None
) -> ContentProvider:
    if config.provider == "github":
        if config.github is None:
            raise ProviderError("github provider selected without settings")
        return GitHubProvider(
            config.github,
            config.notes_dir,
            config.attachments_dir,
            session=session,
        )
    return FilesystemProvider(
        config.vault_dir,
        config.notes_dir,
        config.attachments_dir,
    )
