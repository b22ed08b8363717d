"""Blob store contract and the in-process/filesystem implementations."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

LOGGER = logging.getLogger("pcm_server.blob_store")

_META_SUFFIX = ".meta.json"


@dataclass
class BlobObject:
    data: bytes
    content_type: str = "application/octet-stream"
    metadata: Dict[str, str] = field(default_factory=dict)


class BlobStore(Protocol):
    """Key/value object store over byte blobs with metadata tags."""

    async def head(self, key: str) -> bool: ...

    async def get(self, key: str) -> Optional[bytes]: ...

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None: ...

    async def delete(self, key: str) -> None: ...


class InMemoryBlobStore:
    """Thread-safe dict-backed store, used for development and tests."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: Dict[str, BlobObject] = {}

    async def head(self, key: str) -> bool:
        with self._lock:
            return key in self._objects

    async def get(self, key: str) -> Optional[bytes]:
        with self._lock:
            obj = self._objects.get(key)
        return obj.data if obj else None

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        obj = BlobObject(bytes(data), content_type, dict(metadata or {}))
        with self._lock:
            self._objects[key] = obj

    async def delete(self, key: str) -> None:
        with self._lock:
            self._objects.pop(key, None)

    def describe(self, key: str) -> Optional[BlobObject]:
        """Return the stored object including content type and metadata."""
        with self._lock:
            return self._objects.get(key)

    def keys(self) -> list:
        with self._lock:
            return sorted(self._objects)


class FileSystemBlobStore:
    """Stores each blob as a file under ``root`` with a JSON metadata sidecar.

    Slash-separated keys map onto nested directories. Blocking file I/O runs
    in a worker thread so callers on the event loop are not stalled.
    """

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser().resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        parts = [part for part in key.replace("\\", "/").split("/") if part]
        if not parts or any(part in (".", "..") for part in parts):
            raise ValueError(f"invalid blob key: {key!r}")
        if parts[-1].endswith(_META_SUFFIX):
            raise ValueError(f"reserved blob key suffix: {key!r}")
        return self._root.joinpath(*parts)

    async def head(self, key: str) -> bool:
        path = self._path_for(key)
        return await asyncio.to_thread(path.is_file)

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path_for(key)
        return await asyncio.to_thread(self._read, path)

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str = "application/octet-stream",
        metadata: Optional[Mapping[str, str]] = None,
    ) -> None:
        path = self._path_for(key)
        sidecar = {"content_type": content_type, "metadata": dict(metadata or {})}
        await asyncio.to_thread(self._write, path, bytes(data), sidecar)

    async def delete(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(self._remove, path)

    async def describe(self, key: str) -> Optional[BlobObject]:
        path = self._path_for(key)
        return await asyncio.to_thread(self._describe, path)

    @staticmethod
    def _read(path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    @staticmethod
    def _write(path: Path, data: bytes, sidecar: Dict[str, object]) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Write-then-rename so readers never observe a partial blob.
        tmp_path = path.with_name(f".{path.name}.{os.getpid()}.{threading.get_ident()}.tmp")
        tmp_path.write_bytes(data)
        os.replace(tmp_path, path)
        meta_path = path.with_name(path.name + _META_SUFFIX)
        meta_path.write_text(json.dumps(sidecar, sort_keys=True), encoding="utf-8")

    @staticmethod
    def _remove(path: Path) -> None:
        for target in (path, path.with_name(path.name + _META_SUFFIX)):
            try:
                target.unlink()
            except FileNotFoundError:
                LOGGER.debug("Blob path already removed: %s", target)

    @staticmethod
    def _describe(path: Path) -> Optional[BlobObject]:
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            return None
        meta_path = path.with_name(path.name + _META_SUFFIX)
        try:
            sidecar = json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            sidecar = {}
        return BlobObject(
            data=data,
            content_type=sidecar.get("content_type", "application/octet-stream"),
            metadata=dict(sidecar.get("metadata") or {}),
        )


__all__ = ["BlobObject", "BlobStore", "FileSystemBlobStore", "InMemoryBlobStore"]
