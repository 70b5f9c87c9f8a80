"""
Tiered (local disk, then remote bucket) cache for generated story artifacts.

Artifacts are addressed by ``(language, level, topic slug, kind)`` plus a page
index. The local tier is authoritative within a run; the remote tier is a
best-effort replica that is consulted on local misses and written through.
Storage faults never escape this module: reads degrade to a miss and writes to
a failed :class:`SaveResult`.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from .blob_store import BlobStore

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


class ArtifactKind(str, Enum):
    IMAGES = "images"
    AUDIO = "audio"
    LOGS = "logs"

    @property
    def extension(self) -> str:
        return _KIND_EXTENSIONS[self]

    @property
    def content_type(self) -> str:
        return _KIND_CONTENT_TYPES[self]


_KIND_EXTENSIONS = {
    ArtifactKind.IMAGES: ".jpg",
    ArtifactKind.AUDIO: ".mp3",
    ArtifactKind.LOGS: ".json",
}

_KIND_CONTENT_TYPES = {
    ArtifactKind.IMAGES: "image/jpeg",
    ArtifactKind.AUDIO: "audio/mpeg",
    ArtifactKind.LOGS: "application/json",
}


def sanitize_topic(topic: str) -> str:
    """
    Normalize a free-text topic into a cache slug.

    Topics with no Latin letters or digits (a Tamil title, say) would all
    collapse to an empty slug, so they get a short digest of the raw text.

    >>> sanitize_topic("The Boy's Star!")
    'the-boy-s-star'
    """
    text = str(topic)
    slug = _NON_ALNUM.sub("-", text.lower()).strip("-")
    if slug or not text.strip():
        return slug
    digest = hashlib.sha1(text.strip().encode("utf-8")).hexdigest()[:10]
    return f"topic-{digest}"


def generate_story_key(language: str, level: int, topic: str, version: str = "v1") -> str:
    return f"{language}_L{level}_{sanitize_topic(topic)}_{version}"


@dataclass(frozen=True)
class ArtifactKey:
    """Identifies one artifact collection (all pages of one kind for one story)."""

    language: str
    level: int
    topic: str
    kind: ArtifactKind = ArtifactKind.IMAGES

    @property
    def slug(self) -> str:
        return sanitize_topic(self.topic)

    @property
    def directory(self) -> str:
        return f"{self.language}/level-{self.level}/{self.slug}/{self.kind.value}"

    def with_kind(self, kind: ArtifactKind) -> "ArtifactKey":
        return ArtifactKey(self.language, self.level, self.topic, kind)

    def page_path(self, page_index: int) -> str:
        if page_index < 0:
            raise ValueError(f"Page index must be non-negative, received {page_index}.")
        return f"{self.directory}/page-{page_index + 1:02d}{self.kind.extension}"

    def named_path(self, name: str) -> str:
        stem = name[: -len(self.kind.extension)] if name.endswith(self.kind.extension) else name
        return f"{self.directory}/{stem}{self.kind.extension}"


@dataclass(frozen=True)
class SaveResult:
    """
    Outcome of a cache write.

    ``remote_ok`` is ``None`` when no remote tier is configured.
    """

    local_ok: bool
    remote_ok: bool | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.local_ok


class ArtifactCache:
    """
    Read-through/write-through artifact cache over a local root and an optional
    remote :class:`~taleweaver.storage.blob_store.BlobStore`.
    """

    def __init__(self, root: str | Path, *, remote: BlobStore | None = None) -> None:
        self._root = Path(root)
        self._remote = remote

    @property
    def root(self) -> Path:
        return self._root

    @property
    def has_remote(self) -> bool:
        return self._remote is not None

    sanitize_topic = staticmethod(sanitize_topic)

    async def try_load(self, key: ArtifactKey, expected_count: int) -> list[bytes] | None:
        """
        Return all ``expected_count`` artifacts of ``key`` or ``None``.

        A partial set in either tier is treated exactly like an empty one.
        """
        if expected_count < 1:
            return None

        paths = [key.page_path(index) for index in range(expected_count)]

        try:
            local = await self._read_local_set(paths)
        except Exception:
            logger.warning("Local cache read failed for %s.", key.directory, exc_info=True)
            local = None
        if local is not None:
            logger.debug("Local cache hit for %s (%d items).", key.directory, len(local))
            return local

        if self._remote is None:
            return None

        try:
            for path in paths:
                if not await self._remote.exists(path):
                    return None
            remote = [await self._remote.download(path) for path in paths]
        except Exception:
            logger.warning("Remote cache read failed for %s.", key.directory, exc_info=True)
            return None

        for path, data in zip(paths, remote):
            await self._write_through(path, data)
        logger.info("Remote cache hit for %s (%d items).", key.directory, len(remote))
        return remote

    async def save(self, key: ArtifactKey, page_index: int, data: bytes) -> SaveResult:
        """
        Persist one page artifact locally, then replicate it to the remote tier.
        """
        try:
            path = key.page_path(page_index)
        except ValueError as exc:
            return SaveResult(local_ok=False, error=str(exc))
        return await self._save_path(path, data, key.kind.content_type)

    async def fetch_single(self, key: ArtifactKey, page_index: int) -> bytes | None:
        """
        Return one artifact from either tier, regardless of set completeness.
        """
        try:
            path = key.page_path(page_index)
        except ValueError:
            return None
        return await self._fetch_path(path)

    async def load_log(self, key: ArtifactKey, name: str) -> Any | None:
        """
        Return a cached JSON document stored under the ``logs`` kind of ``key``.
        """
        path = key.with_kind(ArtifactKind.LOGS).named_path(name)
        data = await self._fetch_path(path)
        if data is None:
            return None
        try:
            return json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Ignoring corrupt cached log %s.", path)
            return None

    async def save_log(self, key: ArtifactKey, name: str, payload: Any) -> SaveResult:
        path = key.with_kind(ArtifactKind.LOGS).named_path(name)
        try:
            data = json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")
        except (TypeError, ValueError) as exc:
            return SaveResult(local_ok=False, error=f"Log payload is not JSON serializable: {exc}")
        return await self._save_path(path, data, ArtifactKind.LOGS.content_type)

    async def _save_path(self, path: str, data: bytes, content_type: str) -> SaveResult:
        try:
            await asyncio.to_thread(_write_file, self._root / path, data)
        except Exception as exc:
            logger.exception("Local cache write failed for %s.", path)
            return SaveResult(local_ok=False, error=f"local: {exc}")

        if self._remote is None:
            return SaveResult(local_ok=True)

        try:
            await self._remote.upload(path, data, content_type)
        except Exception as exc:
            logger.warning("Remote cache write failed for %s: %s", path, exc)
            return SaveResult(local_ok=True, remote_ok=False, error=f"remote: {exc}")
        return SaveResult(local_ok=True, remote_ok=True)

    async def _fetch_path(self, path: str) -> bytes | None:
        local_path = self._root / path
        try:
            if await asyncio.to_thread(local_path.is_file):
                return await asyncio.to_thread(local_path.read_bytes)
        except Exception:
            logger.warning("Local cache read failed for %s.", path, exc_info=True)

        if self._remote is None:
            return None

        try:
            if not await self._remote.exists(path):
                return None
            data = await self._remote.download(path)
        except Exception:
            logger.warning("Remote cache read failed for %s.", path, exc_info=True)
            return None

        await self._write_through(path, data)
        return data

    async def _read_local_set(self, paths: list[str]) -> list[bytes] | None:
        files = [self._root / path for path in paths]
        for file_path in files:
            if not await asyncio.to_thread(file_path.is_file):
                return None
        return [await asyncio.to_thread(file_path.read_bytes) for file_path in files]

    async def _write_through(self, path: str, data: bytes) -> None:
        try:
            await asyncio.to_thread(_write_file, self._root / path, data)
        except Exception:
            logger.warning("Could not sync %s to the local cache.", path, exc_info=True)


def _write_file(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    tmp_path.write_bytes(data)
    tmp_path.replace(path)
