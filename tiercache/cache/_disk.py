"""
Disk tier — directory-backed persistent store.

Layout per category:

    <root>/<category>/<token>        data blob
    <root>/<category>/<token>.meta   {"expiresAt": "<ISO-8601>"} sidecar

Every operation returns Result[..., DiskIOError]; nothing here raises on a
filesystem failure. Blob and sidecar are each written to a temporary name and
renamed into place, blob first, so readers never see a half-written file.

The tier itself takes no locks. Callers that interleave writes with reads,
deletes or sweeps on one entry serialize them with KeyedLocks.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, timedelta, UTC
from pathlib import Path

import aiofiles
import aiofiles.os
from kungfu import Result, Ok, Error

from tiercache._types import Clock, utc_now
from tiercache.cache._types import DiskRecord, DiskEntryInfo, DiskIOError

logger = logging.getLogger(__name__)

SIDECAR_SUFFIX = ".meta"
_TEMP_SUFFIX = ".tmp"
_STALE_TEMP_AGE = timedelta(hours=1)


# ═══════════════════════════════════════════════════════════════════════════════
# Sidecar — Expiration Metadata
# ═══════════════════════════════════════════════════════════════════════════════


def encode_sidecar(expires_at: datetime) -> bytes:
    return json.dumps({"expiresAt": expires_at.isoformat()}).encode("utf-8")


def decode_sidecar(raw: bytes) -> datetime | None:
    """Parse a sidecar. None if it is malformed."""
    try:
        data = json.loads(raw.decode("utf-8"))
        expires_at = datetime.fromisoformat(data["expiresAt"])
    except (ValueError, KeyError, TypeError):
        return None
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=UTC)
    return expires_at


# ═══════════════════════════════════════════════════════════════════════════════
# Disk Tier
# ═══════════════════════════════════════════════════════════════════════════════


class DiskTier:
    """
    Persistent tier scoped by category subdirectory.

    Note: The directory tree is owned exclusively by this tier.

    Example:
        disk = DiskTier(Path("~/.cache/app").expanduser())
        await disk.write("images", token, data, expires_at)
        match await disk.read("images", token):
            case Ok(DiskRecord() as record): ...
            case Ok(None): ...          # miss / expired
            case Error(err): ...        # DiskIOError
    """

    def __init__(self, root: Path, clock: Clock = utc_now) -> None:
        self._root = Path(root)
        self._clock = clock

    @property
    def name(self) -> str:
        return "disk"

    @property
    def root(self) -> Path:
        return self._root

    def directory(self, category: str) -> Path:
        return self._root / category

    def blob_path(self, category: str, token: str) -> Path:
        return self.directory(category) / token

    def sidecar_path(self, category: str, token: str) -> Path:
        return self.directory(category) / f"{token}{SIDECAR_SUFFIX}"

    # ───────────────────────────────────────────────────────────────────────────
    # Entry operations
    # ───────────────────────────────────────────────────────────────────────────

    async def write(
        self,
        category: str,
        token: str,
        payload: bytes,
        expires_at: datetime,
    ) -> Result[None, DiskIOError]:
        """Write blob, then sidecar. On sidecar failure the blob is removed."""
        blob = self.blob_path(category, token)
        sidecar = self.sidecar_path(category, token)
        try:
            await aiofiles.os.makedirs(self.directory(category), exist_ok=True)
            await _write_atomic(blob, payload)
        except OSError as e:
            return Error(DiskIOError("write", blob, e))

        try:
            await _write_atomic(sidecar, encode_sidecar(expires_at))
        except OSError as e:
            await _remove_quietly(blob)
            return Error(DiskIOError("write", sidecar, e))
        return Ok(None)

    async def read(self, category: str, token: str) -> Result[DiskRecord | None, DiskIOError]:
        """
        Read a live entry.

        Ok(None) when the entry is absent, its sidecar is missing or
        unreadable, or it has expired (expired files are deleted here).
        """
        blob = self.blob_path(category, token)
        sidecar = self.sidecar_path(category, token)

        try:
            raw_meta = await _read_bytes(sidecar)
        except FileNotFoundError:
            return Ok(None)
        except OSError as e:
            return Error(DiskIOError("read", sidecar, e))

        expires_at = decode_sidecar(raw_meta)
        if expires_at is None:
            logger.warning("disk: unreadable sidecar %s, treating as miss", sidecar)
            return Ok(None)

        if self._clock() >= expires_at:
            logger.debug("disk: %s/%s expired, deleting", category, token)
            match await self.delete(category, token):
                case Error(err):
                    return Error(err)
                case Ok(_):
                    return Ok(None)

        try:
            payload = await _read_bytes(blob)
        except FileNotFoundError:
            return Ok(None)
        except OSError as e:
            return Error(DiskIOError("read", blob, e))
        return Ok(DiskRecord(payload=payload, expires_at=expires_at))

    async def contains(self, category: str, token: str) -> bool:
        """Live sidecar and blob present. Errors count as absent."""
        sidecar = self.sidecar_path(category, token)
        try:
            expires_at = decode_sidecar(await _read_bytes(sidecar))
        except OSError:
            return False
        if expires_at is None or self._clock() >= expires_at:
            return False
        return await aiofiles.os.path.exists(self.blob_path(category, token))

    async def expiry(self, category: str, token: str) -> Result[datetime | None, DiskIOError]:
        """Sidecar expiry of a stored blob. Ok(None) if the blob has no readable sidecar."""
        sidecar = self.sidecar_path(category, token)
        try:
            return Ok(decode_sidecar(await _read_bytes(sidecar)))
        except FileNotFoundError:
            return Ok(None)
        except OSError as e:
            return Error(DiskIOError("read", sidecar, e))

    async def delete(self, category: str, token: str) -> Result[bool, DiskIOError]:
        """Remove blob and sidecar. Ok(True) if either existed."""
        existed = False
        for path in (self.blob_path(category, token), self.sidecar_path(category, token)):
            try:
                await aiofiles.os.remove(path)
                existed = True
            except FileNotFoundError:
                continue
            except OSError as e:
                return Error(DiskIOError("delete", path, e))
        return Ok(existed)

    # ───────────────────────────────────────────────────────────────────────────
    # Category operations
    # ───────────────────────────────────────────────────────────────────────────

    async def categories(self) -> Result[list[str], DiskIOError]:
        try:
            names = await aiofiles.os.listdir(self._root)
        except FileNotFoundError:
            return Ok([])
        except OSError as e:
            return Error(DiskIOError("list", self._root, e))
        dirs = [n for n in names if await aiofiles.os.path.isdir(self._root / n)]
        return Ok(sorted(dirs))

    async def clear(self, category: str | None = None) -> Result[int, DiskIOError]:
        """Delete every file in a category (None: every category). Returns files removed."""
        if category is None:
            match await self.categories():
                case Error(err):
                    return Error(err)
                case Ok(names):
                    pass
            total = 0
            for name in names:
                match await self.clear(name):
                    case Error(err):
                        return Error(err)
                    case Ok(removed):
                        total += removed
            return Ok(total)

        directory = self.directory(category)
        match await _list(directory):
            case Error(err):
                return Error(err)
            case Ok(names):
                pass

        removed = 0
        for name in names:
            path = directory / name
            try:
                await aiofiles.os.remove(path)
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                return Error(DiskIOError("clear", path, e))
        return Ok(removed)

    async def size_of(self, category: str) -> Result[int, DiskIOError]:
        """Sum of all file sizes in a category."""
        directory = self.directory(category)
        match await _list(directory):
            case Error(err):
                return Error(err)
            case Ok(names):
                pass

        total = 0
        for name in names:
            try:
                total += (await aiofiles.os.stat(directory / name)).st_size
            except FileNotFoundError:
                continue
            except OSError as e:
                return Error(DiskIOError("stat", directory / name, e))
        return Ok(total)

    async def count(self, category: str) -> Result[int, DiskIOError]:
        """Number of data blobs (sidecars and temporaries excluded)."""
        match await _list(self.directory(category)):
            case Error(err):
                return Error(err)
            case Ok(names):
                return Ok(sum(1 for n in names if _is_blob(n)))

    async def entries(self, category: str) -> Result[list[DiskEntryInfo], DiskIOError]:
        """
        Describe every blob in a category.

        size covers blob + sidecar; expires_at is None when the sidecar is
        missing or unreadable.
        """
        directory = self.directory(category)
        match await _list(directory):
            case Error(err):
                return Error(err)
            case Ok(names):
                pass

        present = set(names)
        infos: list[DiskEntryInfo] = []
        for name in names:
            if not _is_blob(name):
                continue
            blob = directory / name
            sidecar_name = f"{name}{SIDECAR_SUFFIX}"
            try:
                blob_stat = await aiofiles.os.stat(blob)
            except FileNotFoundError:
                continue
            except OSError as e:
                return Error(DiskIOError("stat", blob, e))

            size = blob_stat.st_size
            expires_at = None
            if sidecar_name in present:
                try:
                    size += (await aiofiles.os.stat(directory / sidecar_name)).st_size
                    expires_at = decode_sidecar(await _read_bytes(directory / sidecar_name))
                except FileNotFoundError:
                    pass
                except OSError as e:
                    return Error(DiskIOError("read", directory / sidecar_name, e))

            infos.append(DiskEntryInfo(
                token=name,
                modified_at=blob_stat.st_mtime,
                size=size,
                expires_at=expires_at,
            ))
        return Ok(infos)

    async def remove_orphans(self, category: str) -> Result[int, DiskIOError]:
        """
        Delete sidecars without a blob and temporaries left by an interrupted
        write. Returns files removed.
        """
        directory = self.directory(category)
        match await _list(directory):
            case Error(err):
                return Error(err)
            case Ok(names):
                pass

        present = set(names)
        cutoff = self._clock().timestamp() - _STALE_TEMP_AGE.total_seconds()
        removed = 0
        for name in names:
            path = directory / name
            try:
                if name.endswith(SIDECAR_SUFFIX):
                    if name.removesuffix(SIDECAR_SUFFIX) in present:
                        continue
                elif name.endswith(_TEMP_SUFFIX):
                    if (await aiofiles.os.stat(path)).st_mtime > cutoff:
                        continue
                else:
                    continue
                await aiofiles.os.remove(path)
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                return Error(DiskIOError("delete", path, e))
        return Ok(removed)


# ═══════════════════════════════════════════════════════════════════════════════
# File helpers
# ═══════════════════════════════════════════════════════════════════════════════


def _is_blob(name: str) -> bool:
    # Tokens never contain '.', sidecars and temporaries always do
    return "." not in name


async def _list(directory: Path) -> Result[list[str], DiskIOError]:
    try:
        return Ok(await aiofiles.os.listdir(directory))
    except FileNotFoundError:
        return Ok([])
    except OSError as e:
        return Error(DiskIOError("list", directory, e))


async def _read_bytes(path: Path) -> bytes:
    async with aiofiles.open(path, "rb") as f:
        return await f.read()


async def _write_atomic(path: Path, data: bytes) -> None:
    temp = path.with_name(f"{path.name}.{uuid.uuid4().hex}{_TEMP_SUFFIX}")
    try:
        async with aiofiles.open(temp, "wb") as f:
            await f.write(data)
        await aiofiles.os.replace(temp, path)
    except OSError:
        await _remove_quietly(temp)
        raise


async def _remove_quietly(path: Path) -> None:
    try:
        await aiofiles.os.remove(path)
    except OSError as e:
        if not isinstance(e, FileNotFoundError):
            logger.warning("disk: could not remove %s: %s", path, e)


__all__ = ("DiskTier", "SIDECAR_SUFFIX", "encode_sidecar", "decode_sidecar")
