"""
PicStash Backend — File Store Unit Tests
==========================================

What:  Tests for LocalFileStore on a real temporary directory.

Test Strategy:
    ✅ Exclusive create never overwrites; it moves to the next candidate
    ✅ Append concatenates chunks
    ✅ Listing skips hidden files and directories
    ✅ Delete reports whether something was removed
    ✅ Names resolving outside the directory are rejected
"""

import io

import pytest

from picstash.exceptions import FileStorageError, ValidationError
from picstash.services.naming import FileNamer
from picstash.services.storage import LocalFileStore


class _Source:
    """Minimal async source, like UploadFile."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)

    async def read(self, size: int = -1) -> bytes:
        return self._buffer.read(size)


class _BrokenSource:
    """Yields one block, then fails."""

    def __init__(self, error: Exception):
        self._error = error
        self._sent = False

    async def read(self, size: int = -1) -> bytes:
        if self._sent:
            raise self._error
        self._sent = True
        return b"partial"


class TestLocalFileStore:

    @pytest.mark.asyncio
    async def test_create_exclusive_writes_first_free_name(self, upload_dir):
        store = LocalFileStore(str(upload_dir))
        namer = FileNamer()

        name, written = await store.create_exclusive(namer.candidates("a.txt"), _Source(b"one"))
        assert (name, written) == ("a.txt", 3)

        name, _ = await store.create_exclusive(namer.candidates("a.txt"), _Source(b"two"))
        assert name == "a-(2).txt"
        assert (upload_dir / "a.txt").read_bytes() == b"one"
        assert (upload_dir / "a-(2).txt").read_bytes() == b"two"

    @pytest.mark.asyncio
    async def test_create_exclusive_creates_missing_root(self, tmp_path):
        store = LocalFileStore(str(tmp_path / "not" / "yet"))
        name, _ = await store.create_exclusive(iter(["x.bin"]), _Source(b"\x00\x01"))
        assert (tmp_path / "not" / "yet" / name).exists()

    @pytest.mark.asyncio
    async def test_large_source_copied_in_blocks(self, upload_dir):
        data = bytes(range(256)) * 1024  # 256 KiB, several copy blocks
        store = LocalFileStore(str(upload_dir))
        _, written = await store.create_exclusive(iter(["big.bin"]), _Source(data))
        assert written == len(data)
        assert (upload_dir / "big.bin").read_bytes() == data

    @pytest.mark.asyncio
    async def test_append_concatenates(self, upload_dir):
        store = LocalFileStore(str(upload_dir))
        await store.create_exclusive(iter(["chunked.bin"]), _Source(b"abc"))
        await store.append("chunked.bin", _Source(b"def"))

        assert await store.size("chunked.bin") == 6
        assert (upload_dir / "chunked.bin").read_bytes() == b"abcdef"

    @pytest.mark.asyncio
    async def test_failed_write_leaves_no_file(self, upload_dir):
        """A source that breaks mid-copy must not leave a half-written file behind."""
        store = LocalFileStore(str(upload_dir))

        with pytest.raises(FileStorageError):
            await store.create_exclusive(iter(["broken.bin"]), _BrokenSource(OSError("disk gone")))
        with pytest.raises(RuntimeError):
            await store.create_exclusive(iter(["broken.bin"]), _BrokenSource(RuntimeError("boom")))
        assert list(upload_dir.iterdir()) == []

        name, _ = await store.create_exclusive(FileNamer().candidates("broken.bin"), _Source(b"ok"))
        assert name == "broken.bin"

    @pytest.mark.asyncio
    async def test_list_skips_hidden_and_directories(self, upload_dir):
        (upload_dir / "b.txt").write_bytes(b"b")
        (upload_dir / "a.txt").write_bytes(b"a")
        (upload_dir / ".hidden").write_bytes(b"h")
        (upload_dir / "thumbnails").mkdir()

        store = LocalFileStore(str(upload_dir))
        assert await store.list_files() == ["a.txt", "b.txt"]
        assert await store.count_files() == 2

    @pytest.mark.asyncio
    async def test_list_missing_root_is_empty(self, tmp_path):
        assert await LocalFileStore(str(tmp_path / "missing")).list_files() == []

    @pytest.mark.asyncio
    async def test_size_of_missing_file_is_zero(self, upload_dir):
        assert await LocalFileStore(str(upload_dir)).size("nope.jpg") == 0

    @pytest.mark.asyncio
    async def test_delete_true_then_false(self, upload_dir):
        (upload_dir / "gone.txt").write_bytes(b"x")
        store = LocalFileStore(str(upload_dir))

        assert await store.delete("gone.txt") is True
        assert not (upload_dir / "gone.txt").exists()
        assert await store.delete("gone.txt") is False

    @pytest.mark.asyncio
    async def test_delete_directory_is_false(self, upload_dir):
        (upload_dir / "folder").mkdir()
        assert await LocalFileStore(str(upload_dir)).delete("folder") is False
        assert (upload_dir / "folder").is_dir()

    def test_path_outside_root_rejected(self, upload_dir):
        store = LocalFileStore(str(upload_dir))
        with pytest.raises(ValidationError):
            store.path_for("..")
        with pytest.raises(ValidationError):
            store.path_for("../escape.txt")
