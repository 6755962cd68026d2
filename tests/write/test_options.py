#!/usr/bin/env python3
"""Tests for per-file option resolution."""

import os
import stat
from pathlib import Path

import pytest

from destfs.core.constants import WriteFlag
from destfs.core.validators import ValidationError
from destfs.core.virtual_file import FileStat, VirtualFile
from destfs.write.options import OptionResolver, WriteOptions


@pytest.fixture
def file() -> VirtualFile:
    return VirtualFile(
        "/src/docs/readme.md", b"# hi", base="/src", stat=FileStat(mode=stat.S_IFREG | 0o640)
    )


class TestWriteOptions:
    """Tests for the resolved options record."""

    def test_flag(self):
        assert WriteOptions(cwd="/").flag is WriteFlag.OVERWRITE
        assert WriteOptions(cwd="/", overwrite=False).flag is WriteFlag.EXCLUSIVE
        assert WriteOptions(cwd="/", append=True).flag is WriteFlag.APPEND
        assert WriteOptions(cwd="/", overwrite=False, append=True).flag is WriteFlag.EXCLUSIVE_APPEND

    def test_frozen(self):
        options = WriteOptions(cwd="/")
        with pytest.raises(Exception):
            options.mode = 0o600


class TestOptionResolver:
    """Tests for OptionResolver."""

    def test_unknown_option(self, posix_caps):
        with pytest.raises(ValueError, match="Unknown write options"):
            OptionResolver(posix_caps, colour="blue")

    def test_defaults(self, posix_caps, file):
        options = OptionResolver(posix_caps).resolve(file)
        assert options.cwd == os.getcwd()
        assert options.mode == 0o640
        assert options.dir_mode is None
        assert options.overwrite is True
        assert options.append is False
        assert options.relative_symlinks is False
        assert options.use_junctions is False

    def test_junction_default_follows_platform(self, windows_caps, file):
        assert OptionResolver(windows_caps).resolve(file).use_junctions is True

    def test_mode_default_without_stat(self, posix_caps):
        options = OptionResolver(posix_caps).resolve(VirtualFile("/src/a", b""))
        assert options.mode is None

    def test_literal_values(self, posix_caps, file, temp_dir: Path):
        resolver = OptionResolver(
            posix_caps, cwd=temp_dir, mode=0o600, overwrite=False, relative_symlinks=True
        )
        options = resolver.resolve(file)
        assert options.cwd == str(temp_dir)
        assert options.mode == 0o600
        assert options.overwrite is False
        assert options.relative_symlinks is True

    def test_callable(self, posix_caps, file):
        resolver = OptionResolver(
            posix_caps,
            out_folder=lambda f: "md" if f.extname == ".md" else "other",
            overwrite=lambda f: f.stem != "readme",
        )
        options = resolver.resolve(file)
        assert options.out_folder == "md"
        assert options.overwrite is False

    def test_template(self, posix_caps, file):
        resolver = OptionResolver(posix_caps, out_folder="build/{{ file.extname[1:] }}")
        assert resolver.resolve(file).out_folder == "build/md"

    def test_template_cached(self, posix_caps, file):
        resolver = OptionResolver(posix_caps, out_folder="out/{{ file.stem }}")
        resolver.resolve(file)
        resolver.resolve(file)
        stats = resolver.template_cache.get_stats()
        assert stats["entries"] == 1
        assert stats["hits"] >= 1

    def test_template_error(self, posix_caps, file):
        resolver = OptionResolver(posix_caps, out_folder="{{ file.nope.deeper }}")
        with pytest.raises(ValidationError):
            resolver.resolve(file)

    def test_octal_string_mode(self, posix_caps, file):
        assert OptionResolver(posix_caps, mode="0o755").resolve(file).mode == 0o755

    def test_mode_out_of_range(self, posix_caps, file):
        with pytest.raises(ValidationError):
            OptionResolver(posix_caps, mode=0o100644).resolve(file)

    def test_wrong_type_falls_back(self, posix_caps, file):
        resolver = OptionResolver(posix_caps, overwrite="no", mode=True)
        options = resolver.resolve(file)
        assert options.overwrite is True
        assert options.mode == 0o640

    def test_get_single(self, posix_caps, file):
        resolver = OptionResolver(posix_caps, append=lambda f: True)
        assert resolver.get("append", file, False) is True
        assert resolver.get("dir_mode", file, 0o700) == 0o700
