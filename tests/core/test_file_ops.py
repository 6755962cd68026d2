#!/usr/bin/env python3
"""Tests for low-level file operations."""

import asyncio
import errno
import os
import stat
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from destfs.core import file_ops
from destfs.core.constants import LinkType, WriteFlag
from destfs.core.file_ops import OwnerDiff, TimesDiff
from destfs.core.platform import PlatformCapabilities
from destfs.core.virtual_file import FileStat, VirtualFile


def fake_stat(mode=0o100644, mtime=1000.0, atime=1000.0, uid=1000, gid=1000):
    """Minimal stand-in for os.stat_result."""
    return SimpleNamespace(st_mode=mode, st_mtime=mtime, st_atime=atime, st_uid=uid, st_gid=gid)


class TestGetFlags:
    """Tests for write flag selection."""

    def test_overwrite(self):
        assert file_ops.get_flags(overwrite=True) is WriteFlag.OVERWRITE

    def test_exclusive(self):
        assert file_ops.get_flags(overwrite=False) is WriteFlag.EXCLUSIVE

    def test_append(self):
        assert file_ops.get_flags(overwrite=True, append=True) is WriteFlag.APPEND

    def test_exclusive_append(self):
        """Append without overwrite still refuses an existing file."""
        flag = file_ops.get_flags(overwrite=False, append=True)
        assert flag is WriteFlag.EXCLUSIVE_APPEND
        assert flag.is_exclusive
        assert flag.is_append
        assert flag.os_flags & os.O_EXCL
        assert flag.os_flags & os.O_APPEND
        assert not flag.os_flags & os.O_TRUNC


class TestIsFatalOverwriteError:
    """Tests for collision classification."""

    def test_no_error(self):
        assert not file_ops.is_fatal_overwrite_error(None, WriteFlag.EXCLUSIVE)

    def test_eexist_with_exclusive_is_absorbed(self):
        err = FileExistsError(errno.EEXIST, "File exists")
        assert not file_ops.is_fatal_overwrite_error(err, WriteFlag.EXCLUSIVE)

    def test_eexist_with_exclusive_append_is_absorbed(self):
        err = FileExistsError(errno.EEXIST, "File exists")
        assert not file_ops.is_fatal_overwrite_error(err, WriteFlag.EXCLUSIVE_APPEND)

    def test_eexist_with_overwrite_is_fatal(self):
        err = FileExistsError(errno.EEXIST, "File exists")
        assert file_ops.is_fatal_overwrite_error(err, WriteFlag.OVERWRITE)

    def test_other_errno_is_fatal(self):
        err = PermissionError(errno.EACCES, "Permission denied")
        assert file_ops.is_fatal_overwrite_error(err, WriteFlag.EXCLUSIVE)


class TestModeDiff:
    """Tests for get_mode_diff."""

    def test_unspecified(self):
        assert file_ops.get_mode_diff(0o100644, None) == 0

    def test_same_mode(self):
        assert file_ops.get_mode_diff(0o100644, 0o644) == 0

    def test_changed_bits(self):
        assert file_ops.get_mode_diff(0o100644, 0o755) == 0o111

    def test_file_type_bits_ignored(self):
        assert file_ops.get_mode_diff(0o040755, 0o100755) == 0

    def test_special_bits(self):
        assert file_ops.get_mode_diff(0o100755, 0o4755) == 0o4000


class TestTimesDiff:
    """Tests for get_times_diff."""

    def test_invalid_mtime(self):
        """Without a valid mtime no times are applied, even if atime is set."""
        assert file_ops.get_times_diff(fake_stat(), FileStat(mtime=None, atime=5)) is None
        assert file_ops.get_times_diff(fake_stat(), FileStat(mtime=float("nan"))) is None
        assert file_ops.get_times_diff(fake_stat(), FileStat(mtime="1000")) is None

    def test_both_match(self):
        assert file_ops.get_times_diff(fake_stat(), FileStat(mtime=1000.0, atime=1000.0)) is None

    def test_mtime_differs(self):
        diff = file_ops.get_times_diff(fake_stat(), FileStat(mtime=2000, atime=1500))
        assert diff == TimesDiff(mtime=2000, atime=1500)

    def test_atime_falls_back_to_disk(self):
        diff = file_ops.get_times_diff(fake_stat(atime=1234.0), FileStat(mtime=2000))
        assert diff == TimesDiff(mtime=2000, atime=1234.0)


class TestOwnerDiff:
    """Tests for get_owner_diff."""

    def test_nothing_requested(self):
        assert file_ops.get_owner_diff(fake_stat(), FileStat()) is None

    def test_already_matching(self):
        assert file_ops.get_owner_diff(fake_stat(), FileStat(uid=1000, gid=1000)) is None

    def test_uid_only_inherits_gid(self):
        diff = file_ops.get_owner_diff(fake_stat(uid=1000, gid=50), FileStat(uid=1001))
        assert diff == OwnerDiff(uid=1001, gid=50)

    def test_negative_id_inherits(self):
        diff = file_ops.get_owner_diff(fake_stat(uid=1000, gid=50), FileStat(uid=-1, gid=60))
        assert diff == OwnerDiff(uid=1000, gid=60)


class TestIsOwner:
    """Tests for the metadata privilege gate."""

    def test_owner(self, posix_caps):
        with patch.object(PlatformCapabilities, "effective_uid", return_value=1000):
            assert file_ops.is_owner(fake_stat(uid=1000), posix_caps)

    def test_root(self, posix_caps):
        with patch.object(PlatformCapabilities, "effective_uid", return_value=0):
            assert file_ops.is_owner(fake_stat(uid=1000), posix_caps)

    def test_other_user(self, posix_caps):
        with patch.object(PlatformCapabilities, "effective_uid", return_value=1001):
            assert not file_ops.is_owner(fake_stat(uid=1000), posix_caps)

    def test_no_effective_uid(self, windows_caps):
        assert not file_ops.is_owner(fake_stat(uid=0), windows_caps)


class TestDescriptorIO:
    """Tests for open_file, write_all and close_fd."""

    @pytest.mark.asyncio
    async def test_write_all_from_start(self, temp_dir: Path):
        path = temp_dir / "a.bin"
        path.write_bytes(b"0123456789")
        fd = await file_ops.open_file(str(path), WriteFlag.OVERWRITE, 0o644)
        try:
            written = await file_ops.write_all(fd, b"abc")
        finally:
            await file_ops.close(fd)
        assert written == 3
        assert path.read_bytes() == b"abc"

    @pytest.mark.asyncio
    async def test_append(self, temp_dir: Path):
        path = temp_dir / "a.log"
        path.write_bytes(b"one\n")
        fd = await file_ops.open_file(str(path), WriteFlag.APPEND)
        try:
            await file_ops.write_all(fd, b"two\n", position=None)
        finally:
            await file_ops.close(fd)
        assert path.read_bytes() == b"one\ntwo\n"

    @pytest.mark.asyncio
    async def test_exclusive_open_of_existing_file(self, temp_dir: Path):
        path = temp_dir / "a.txt"
        path.write_text("keep")
        with pytest.raises(FileExistsError):
            await file_ops.open_file(str(path), WriteFlag.EXCLUSIVE)
        assert path.read_text() == "keep"

    @pytest.mark.asyncio
    async def test_positioned_write_without_pwrite(self, temp_dir: Path):
        """Without pwrite the offset is set through the wrapped lseek."""
        path = temp_dir / "a.bin"
        path.write_bytes(b"0123456789")
        lseek = AsyncMock(wraps=file_ops.lseek)
        fd = await file_ops.open_file(str(path), WriteFlag.OVERWRITE, 0o644)
        try:
            with patch.object(file_ops, "pwrite_fd", None), patch.object(
                file_ops, "lseek", lseek
            ):
                written = await file_ops.write_all(fd, b"abc", position=0)
        finally:
            await file_ops.close(fd)

        assert written == 3
        lseek.assert_awaited_once_with(fd, 0, os.SEEK_SET)
        assert path.read_bytes() == b"abc"

    @pytest.mark.asyncio
    async def test_short_writes_are_continued(self):
        chunks = []

        async def short_write(fd, view):
            chunks.append(bytes(view[:2]))
            return min(2, len(view))

        with patch.object(file_ops, "write_fd", short_write):
            total = await file_ops.write_all(3, b"hello", position=None)

        assert total == 5
        assert b"".join(chunks) == b"hello"

    @pytest.mark.asyncio
    async def test_close_fd_keeps_propagated_error(self):
        primary = OSError(errno.EIO, "write failed")
        with patch.object(file_ops, "close", AsyncMock(side_effect=OSError(errno.EBADF, "bad"))):
            assert await file_ops.close_fd(primary, 5) is primary

    @pytest.mark.asyncio
    async def test_close_fd_reports_close_error(self):
        close_err = OSError(errno.EBADF, "bad")
        with patch.object(file_ops, "close", AsyncMock(side_effect=close_err)):
            assert await file_ops.close_fd(None, 5) is close_err

    @pytest.mark.asyncio
    async def test_close_fd_ignores_non_descriptor(self):
        with patch.object(file_ops, "close", AsyncMock()) as close:
            assert await file_ops.close_fd(None, None) is None
        close.assert_not_called()


class TestEnsureDir:
    """Tests for idempotent recursive directory creation."""

    @pytest.mark.asyncio
    async def test_creates_missing_parents(self, temp_dir: Path):
        target = temp_dir / "a" / "b" / "c"
        await file_ops.ensure_dir(target)
        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_existing_directory(self, temp_dir: Path):
        await file_ops.ensure_dir(temp_dir)
        assert temp_dir.is_dir()

    @pytest.mark.asyncio
    async def test_explicit_mode_on_new_directory(self, temp_dir: Path):
        """The mode is enforced even when the umask would strip bits."""
        target = temp_dir / "shared"
        old_umask = os.umask(0o077)
        try:
            await file_ops.ensure_dir(target, 0o755)
        finally:
            os.umask(old_umask)
        assert stat.S_IMODE(target.stat().st_mode) == 0o755

    @pytest.mark.asyncio
    async def test_explicit_mode_on_existing_directory(self, temp_dir: Path):
        target = temp_dir / "existing"
        target.mkdir(mode=0o700)
        await file_ops.ensure_dir(target, 0o750)
        assert stat.S_IMODE(target.stat().st_mode) == 0o750

    @pytest.mark.asyncio
    async def test_parents_get_default_mode(self, temp_dir: Path):
        """Only the leaf directory receives the explicit mode."""
        leaf = temp_dir / "p" / "leaf"
        old_umask = os.umask(0o022)
        try:
            await file_ops.ensure_dir(leaf, 0o700)
        finally:
            os.umask(old_umask)
        assert stat.S_IMODE(leaf.stat().st_mode) == 0o700
        assert stat.S_IMODE(leaf.parent.stat().st_mode) == 0o755

    @pytest.mark.asyncio
    async def test_default_mode_does_not_touch_umask(self, temp_dir: Path):
        caps = PlatformCapabilities.detect("linux", umask=0o022)
        target = temp_dir / "a" / "b"
        with patch.object(os, "umask") as umask:
            await file_ops.ensure_dir(target, capabilities=caps)
        umask.assert_not_called()
        assert target.is_dir()

    @pytest.mark.asyncio
    async def test_path_segment_is_a_file(self, temp_dir: Path):
        blocker = temp_dir / "file"
        blocker.write_text("x")
        with pytest.raises(FileExistsError):
            await file_ops.ensure_dir(blocker)

    @pytest.mark.asyncio
    async def test_parent_segment_is_a_file(self, temp_dir: Path):
        blocker = temp_dir / "file"
        blocker.write_text("x")
        with pytest.raises(NotADirectoryError):
            await file_ops.ensure_dir(blocker / "child")

    @pytest.mark.asyncio
    async def test_concurrent_creation(self, temp_dir: Path):
        """Many writers racing on the same tree all succeed."""
        targets = [temp_dir / "x" / "y" / f"leaf{i % 3}" for i in range(12)]
        await asyncio.gather(*(file_ops.ensure_dir(t) for t in targets))
        for t in targets:
            assert t.is_dir()


class TestSymlink:
    """Tests for link creation."""

    @pytest.mark.asyncio
    async def test_create(self, temp_dir: Path):
        target = temp_dir / "target.txt"
        target.write_text("data")
        link = temp_dir / "link"

        await file_ops.symlink(str(target), str(link))

        assert os.readlink(link) == str(target)

    @pytest.mark.asyncio
    async def test_overwrite_replaces_link(self, temp_dir: Path):
        link = temp_dir / "link"
        os.symlink("old", link)

        await file_ops.symlink("new", str(link), WriteFlag.OVERWRITE, LinkType.FILE)

        assert os.readlink(link) == "new"

    @pytest.mark.asyncio
    async def test_exclusive_keeps_link(self, temp_dir: Path):
        link = temp_dir / "link"
        os.symlink("old", link)

        with pytest.raises(FileExistsError):
            await file_ops.symlink("new", str(link), WriteFlag.EXCLUSIVE, LinkType.FILE)

        assert os.readlink(link) == "old"

    @pytest.mark.asyncio
    async def test_reflect_link_stat(self, temp_dir: Path):
        link = temp_dir / "dangling"
        os.symlink("missing", link)
        file = VirtualFile(str(link))

        await file_ops.reflect_link_stat(str(link), file)

        assert file.stat.is_symlink()
