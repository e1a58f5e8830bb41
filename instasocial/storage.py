"""Key-value storage backends for instasocial.

Every backend implements the same small async contract:

  - get(key, shared) -> Optional[StoredValue]
  - set(key, value, shared) -> None
  - delete(key, shared) -> None

``shared`` selects the scope. Shared blobs (users, posts, messages) may be read
by other sessions on the same backing store; non-shared blobs (the current
session) stay local to this machine.

Blocking backends (files, keyring, HTTP) run their I/O in a worker thread via
``asyncio.to_thread``. Failures surface as ``StorageError``; a missing key is
``None``, not an error.
"""
from __future__ import annotations

import asyncio
import base64
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

import keyring
import requests
from keyring.errors import KeyringError, PasswordDeleteError

from .config import Settings
from .errors import StorageError

logger = logging.getLogger("instasocial.storage")

# Size of each chunk in bytes when splitting large values for keyring storage.
# Keep this conservative to avoid per-credential limits on Windows Credential Manager.
_CHUNK_SIZE = 1000


@dataclass(frozen=True)
class StoredValue:
    value: str


class StorageAdapter:
    async def get(self, key: str, shared: bool) -> Optional[StoredValue]: ...
    async def set(self, key: str, value: str, shared: bool) -> None: ...
    async def delete(self, key: str, shared: bool) -> None: ...


class MemoryStorage(StorageAdapter):
    """In-process dict store. Both scopes live in the same dict."""

    def __init__(self):
        self.data: Dict[Tuple[bool, str], str] = {}

    async def get(self, key: str, shared: bool) -> Optional[StoredValue]:
        value = self.data.get((shared, key))
        return StoredValue(value) if value is not None else None

    async def set(self, key: str, value: str, shared: bool) -> None:
        self.data[(shared, key)] = value

    async def delete(self, key: str, shared: bool) -> None:
        self.data.pop((shared, key), None)


class BlockingStorage(StorageAdapter):
    """Base for backends with synchronous I/O; subclasses implement the _methods."""

    async def get(self, key: str, shared: bool) -> Optional[StoredValue]:
        value = await asyncio.to_thread(self._get, key, shared)
        return StoredValue(value) if value is not None else None

    async def set(self, key: str, value: str, shared: bool) -> None:
        await asyncio.to_thread(self._set, key, value, shared)

    async def delete(self, key: str, shared: bool) -> None:
        await asyncio.to_thread(self._delete, key, shared)

    def _get(self, key: str, shared: bool) -> Optional[str]:
        raise NotImplementedError

    def _set(self, key: str, value: str, shared: bool) -> None:
        raise NotImplementedError

    def _delete(self, key: str, shared: bool) -> None:
        raise NotImplementedError


class FileStorage(BlockingStorage):
    """One JSON text file per key under ``root/shared`` or ``root/local``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def path_for(self, key: str, shared: bool) -> Path:
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise ValueError(f"invalid storage key: {key!r}")
        return self.root / ("shared" if shared else "local") / f"{key}.json"

    def _get(self, key: str, shared: bool) -> Optional[str]:
        path = self.path_for(key, shared)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"failed to read {path}: {e}") from e

    def _set(self, key: str, value: str, shared: bool) -> None:
        path = self.path_for(key, shared)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # one temp file per write; concurrent writers must not share it
            with tempfile.NamedTemporaryFile(
                "w", encoding="utf-8", dir=path.parent, prefix=f".{key}.", suffix=".tmp", delete=False
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(value)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StorageError(f"failed to write {path}: {e}") from e
        logger.debug("wrote %s (%d chars)", path, len(value))

    def _delete(self, key: str, shared: bool) -> None:
        path = self.path_for(key, shared)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"failed to delete {path}: {e}") from e


class KeyringStorage(BlockingStorage):
    """System keyring backend.

    Values that the keyring rejects as too large are split into base64-encoded
    chunks stored under ``{entry}.part{i}``, with the part count stored at
    ``{entry}.parts``. This avoids per-credential size limits in some keyring
    backends (an avatar data URL easily exceeds them).
    """

    def __init__(self, service: str):
        self.service = service

    @staticmethod
    def entry_name(key: str, shared: bool) -> str:
        return f"shared.{key}" if shared else key

    def _get(self, key: str, shared: bool) -> Optional[str]:
        entry = self.entry_name(key, shared)
        try:
            value = keyring.get_password(self.service, entry)
            if value is None:
                value = self._read_chunked(entry)
        except KeyringError as e:
            raise StorageError(f"keyring read failed for {entry}: {e}") from e
        return value

    def _set(self, key: str, value: str, shared: bool) -> None:
        entry = self.entry_name(key, shared)
        try:
            # Delete any existing chunked value first to avoid stale parts
            self._delete_chunked(entry)
            try:
                keyring.set_password(self.service, entry, value)
                return
            except KeyringError:
                logger.debug("single write of %s failed; attempting chunked storage", entry)
            self._store_chunked(entry, value)
        except KeyringError as e:
            raise StorageError(f"keyring write failed for {entry}: {e}") from e

    def _delete(self, key: str, shared: bool) -> None:
        entry = self.entry_name(key, shared)
        try:
            self._delete_quietly(entry)
            self._delete_chunked(entry)
        except KeyringError as e:
            raise StorageError(f"keyring delete failed for {entry}: {e}") from e

    # --- chunking ---

    def _delete_quietly(self, entry: str) -> None:
        try:
            keyring.delete_password(self.service, entry)
        except PasswordDeleteError:
            pass

    def _store_chunked(self, entry: str, value: str) -> None:
        data = value.encode("utf-8")

        # Try progressively smaller chunk sizes to find a size that the
        # backend accepts.
        last_exc: Optional[Exception] = None
        for chunk_size in (_CHUNK_SIZE, 512, 256, 128):
            parts = [data[i : i + chunk_size] for i in range(0, len(data), chunk_size)]
            written = []
            try:
                for idx, part in enumerate(parts):
                    part_key = f"{entry}.part{idx}"
                    keyring.set_password(self.service, part_key, base64.b64encode(part).decode("ascii"))
                    written.append(part_key)
                keyring.set_password(self.service, f"{entry}.parts", str(len(parts)))
                self._delete_quietly(entry)
                logger.debug("stored %s in %d chunk(s) (chunk_size=%d)", entry, len(parts), chunk_size)
                return
            except KeyringError as e:
                last_exc = e
                logger.debug("chunked write with chunk_size=%d failed: %s", chunk_size, e)
                for pk in written:
                    self._delete_quietly(pk)

        raise StorageError(f"all chunked write attempts failed for {entry}") from last_exc

    def _read_chunked(self, entry: str) -> Optional[str]:
        count_s = keyring.get_password(self.service, f"{entry}.parts")
        if not count_s:
            return None
        try:
            count = int(count_s)
        except ValueError:
            logger.debug("invalid parts index for %s: %r", entry, count_s)
            return None

        parts = []
        for i in range(count):
            part_key = f"{entry}.part{i}"
            b64 = keyring.get_password(self.service, part_key)
            if b64 is None:
                raise StorageError(f"missing chunk {part_key}")
            parts.append(base64.b64decode(b64.encode("ascii")))
        return b"".join(parts).decode("utf-8")

    def _delete_chunked(self, entry: str) -> None:
        count_s = keyring.get_password(self.service, f"{entry}.parts")
        if not count_s:
            return
        try:
            count = int(count_s)
        except ValueError:
            count = 0
        for i in range(count):
            self._delete_quietly(f"{entry}.part{i}")
        self._delete_quietly(f"{entry}.parts")


class HttpStorage(BlockingStorage):
    """Remote key-value store reached over HTTP.

    It expects a base_url like https://kv.example.com exposing
    GET/PUT/DELETE /kv/{key}?shared=true|false with JSON bodies {"value": "..."},
    and optional bearer-token auth.
    """

    def __init__(self, base_url: str, token: Optional[str] = None, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        if token:
            self.session.headers.update({"Authorization": f"Bearer {token}"})

    def _url(self, key: str) -> str:
        return f"{self.base_url}/kv/{key}"

    @staticmethod
    def _params(shared: bool) -> Dict[str, str]:
        return {"shared": "true" if shared else "false"}

    def _get(self, key: str, shared: bool) -> Optional[str]:
        try:
            resp = self.session.get(self._url(key), params=self._params(shared), timeout=self.timeout)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()["value"]
        except (requests.RequestException, ValueError, KeyError) as e:
            raise StorageError(f"GET {key} failed: {e}") from e

    def _set(self, key: str, value: str, shared: bool) -> None:
        try:
            resp = self.session.put(
                self._url(key),
                params=self._params(shared),
                json={"value": value},
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            raise StorageError(f"PUT {key} failed: {e}") from e

    def _delete(self, key: str, shared: bool) -> None:
        try:
            resp = self.session.delete(self._url(key), params=self._params(shared), timeout=self.timeout)
            if resp.status_code != 404:
                resp.raise_for_status()
        except requests.RequestException as e:
            raise StorageError(f"DELETE {key} failed: {e}") from e


class ScopedStorage(StorageAdapter):
    """Routes each call to the shared or the local backend."""

    def __init__(self, shared: StorageAdapter, local: StorageAdapter):
        self.shared = shared
        self.local = local

    def _pick(self, shared: bool) -> StorageAdapter:
        return self.shared if shared else self.local

    async def get(self, key: str, shared: bool) -> Optional[StoredValue]:
        return await self._pick(shared).get(key, shared)

    async def set(self, key: str, value: str, shared: bool) -> None:
        await self._pick(shared).set(key, value, shared)

    async def delete(self, key: str, shared: bool) -> None:
        await self._pick(shared).delete(key, shared)


def build_storage(settings: Settings) -> StorageAdapter:
    """Assemble the storage adapter described by ``settings``."""
    if settings.backend_url:
        shared: StorageAdapter = HttpStorage(
            settings.backend_url, token=settings.backend_token, timeout=settings.http_timeout
        )
    else:
        shared = FileStorage(settings.data_dir)

    if settings.session_backend == "keyring":
        local: StorageAdapter = KeyringStorage(settings.keyring_service)
    else:
        local = FileStorage(settings.data_dir)

    logger.debug("storage: shared=%s local=%s", type(shared).__name__, type(local).__name__)
    return ScopedStorage(shared=shared, local=local)
