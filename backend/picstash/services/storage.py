"""
PicStash Backend — File Store
===============================

What:  All file system access of the upload handler: create, append, list,
       measure and delete files inside the upload directory.
Why:   Keeps OS details (paths, exclusive create, hidden files) out of the
       orchestration code and lets tests or deployments swap the backend.
How:   `FileStore` is the abstract contract; `LocalFileStore` implements it on a
       local directory with async file I/O (aiofiles).
Who:   Used by UploadService; never called from routes directly.

Write Modes:
    Whole file  → create_exclusive(): opens each candidate name with mode "xb"
                  (O_CREAT | O_EXCL) and streams the upload into the first one
                  that did not exist yet.
    Partial     → append(): opens an existing file with mode "ab" and streams the
                  chunk onto its end (chunked uploads).

Sources:
    A source is anything with `async read(size) -> bytes`, which is what
    Starlette's UploadFile offers. Data is copied in 64 KiB blocks, so large
    uploads never sit in memory twice.
"""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, List, Protocol, Tuple

import aiofiles
import aiofiles.os

from picstash.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

COPY_BLOCK_SIZE = 64 * 1024

# Upper bound on names tried by create_exclusive before giving up
MAX_NAME_ATTEMPTS = 10_000


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


class FileStore(ABC):
    """
    Abstract storage for uploaded files, addressed by bare file name.

    Implementations must guarantee that create_exclusive() never overwrites an
    existing file, even when two requests race for the same name.
    """

    @abstractmethod
    def path_for(self, name: str) -> Path:
        """Absolute path of a stored file (it may not exist)."""

    @abstractmethod
    async def ensure_root(self) -> None:
        """Create the upload directory when it is missing."""

    @abstractmethod
    async def exists(self, name: str) -> bool:
        ...

    @abstractmethod
    async def size(self, name: str) -> int:
        """Size in bytes, 0 when the file does not exist."""

    @abstractmethod
    async def list_files(self) -> List[str]:
        """Visible files at the top of the directory, sorted by name."""

    @abstractmethod
    async def create_exclusive(
        self, candidates: Iterable[str], source: AsyncReadable
    ) -> Tuple[str, int]:
        """Write source to the first free candidate name; returns (name, bytes written)."""

    @abstractmethod
    async def append(self, name: str, source: AsyncReadable) -> int:
        """Append source to an existing file; returns bytes written."""

    @abstractmethod
    async def delete(self, name: str) -> bool:
        """Delete a file; False when it did not exist."""

    async def count_files(self) -> int:
        return len(await self.list_files())

    async def remove_quietly(self, name: str) -> None:
        """
        Best-effort removal used to discard aborted or rejected uploads.

        Errors are logged, not raised: the request has already failed for
        another reason and that reason is what the client should see.
        """
        try:
            await self.delete(name)
        except FileStorageError as e:
            logger.warning("Failed to discard %s: %s", name, e.context.get("os_error", e.message))


class LocalFileStore(FileStore):
    """FileStore backed by a directory on the local file system."""

    def __init__(self, root: str):
        self.root = Path(root).resolve()

    def path_for(self, name: str) -> Path:
        path = (self.root / name).resolve()
        # A name that resolves outside the root (e.g. "..") is never a stored file
        if path.parent != self.root:
            raise ValidationError(
                message="The given file name is invalid.",
                field="file",
                context={"name": name},
            )
        return path

    async def ensure_root(self) -> None:
        try:
            await aiofiles.os.makedirs(self.root, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create upload directory %s: %s", self.root, str(e))
            raise FileStorageError(
                message="The upload directory could not be created.",
                context={"path": str(self.root), "os_error": str(e)},
            )

    async def exists(self, name: str) -> bool:
        return await aiofiles.os.path.isfile(self.path_for(name))

    async def size(self, name: str) -> int:
        path = self.path_for(name)
        if not await aiofiles.os.path.isfile(path):
            return 0
        return await aiofiles.os.path.getsize(path)

    async def list_files(self) -> List[str]:
        if not await aiofiles.os.path.isdir(self.root):
            return []
        names = []
        for name in await aiofiles.os.listdir(self.root):
            # Hidden files include our own in-progress temp files (".name.tmp")
            if name.startswith("."):
                continue
            if await aiofiles.os.path.isfile(self.root / name):
                names.append(name)
        return sorted(names)

    async def create_exclusive(
        self, candidates: Iterable[str], source: AsyncReadable
    ) -> Tuple[str, int]:
        await self.ensure_root()
        for attempt, name in enumerate(candidates):
            if attempt >= MAX_NAME_ATTEMPTS:
                break
            path = self.path_for(name)
            try:
                f = await aiofiles.open(path, "xb")
            except FileExistsError:
                continue
            except OSError as e:
                raise self._storage_error("create", path, e)

            try:
                written = await self._copy(source, f)
            except Exception as e:
                await f.close()
                await self.remove_quietly(name)
                if isinstance(e, OSError):
                    raise self._storage_error("write", path, e)
                raise
            await f.close()

            logger.info("File stored: %s (%d bytes)", name, written)
            return name, written

        raise FileStorageError(
            message="Could not find a free file name for the upload.",
            context={"attempts": MAX_NAME_ATTEMPTS},
        )

    async def append(self, name: str, source: AsyncReadable) -> int:
        path = self.path_for(name)
        try:
            async with aiofiles.open(path, "ab") as f:
                written = await self._copy(source, f)
        except OSError as e:
            raise self._storage_error("append", path, e)

        logger.info("Chunk appended: %s (+%d bytes)", name, written)
        return written

    async def delete(self, name: str) -> bool:
        path = self.path_for(name)
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            return False
        except IsADirectoryError:
            return False
        except OSError as e:
            raise self._storage_error("delete", path, e)
        logger.info("File deleted: %s", name)
        return True

    @staticmethod
    async def _copy(source: AsyncReadable, target) -> int:
        written = 0
        while True:
            block = await source.read(COPY_BLOCK_SIZE)
            if not block:
                break
            await target.write(block)
            written += len(block)
        await target.flush()
        return written

    @staticmethod
    def _storage_error(operation: str, path: Path, error: OSError) -> FileStorageError:
        logger.error("Failed to %s %s: %s", operation, path, str(error))
        return FileStorageError(
            message="Failed to save uploaded file. Please try again.",
            context={"path": str(path), "operation": operation, "os_error": str(error)},
        )
