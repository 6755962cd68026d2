"""Shared pytest fixtures for destfs tests."""
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Generator

import pytest
import yaml

from destfs.core import platform
from destfs.core.platform import PlatformCapabilities
from destfs.infrastructure import logger as logger_module


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir).resolve()


@pytest.fixture
def source_dir(temp_dir: Path) -> Path:
    """Create a source tree the VirtualFiles are read from."""
    source = temp_dir / "source"
    source.mkdir()

    (source / "file.txt").write_text("Hello World")
    (source / "README.md").write_text("# Test README\n\nTest content")

    (source / "subdir").mkdir()
    (source / "subdir" / "nested.txt").write_text("Nested content")

    return source


@pytest.fixture
def out_dir(temp_dir: Path) -> Path:
    """Path of the output folder (not created)."""
    return temp_dir / "out"


@pytest.fixture
def posix_caps() -> PlatformCapabilities:
    """Capabilities of a POSIX platform."""
    return PlatformCapabilities.detect("linux")


@pytest.fixture
def windows_caps() -> PlatformCapabilities:
    """Capabilities of a platform with typed links (never used for syscalls)."""
    return PlatformCapabilities.detect("win32")


@pytest.fixture
def running_as_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


@pytest.fixture
def sample_config() -> Dict[str, Any]:
    """Provide a sample destfs configuration."""
    return {
        "destfs": {
            "version": "1",
            "write": {
                "mode": "0o640",
                "dir_mode": "0o750",
                "overwrite": False,
                "append": False,
                "relative_symlinks": True,
                "max_concurrency": 4,
            },
            "logging": {
                "level": "DEBUG",
                "file": None,
            },
        }
    }


@pytest.fixture
def config_file(temp_dir: Path, sample_config: Dict[str, Any]) -> Path:
    """Create a configuration file."""
    config_path = temp_dir / "destfs.yaml"
    with open(config_path, "w") as f:
        yaml.dump(sample_config, f)
    return config_path


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset cached platform capabilities and registered loggers between tests."""
    loggers = dict(logger_module._loggers)
    yield
    platform._capabilities = None
    logger_module._loggers.clear()
    logger_module._loggers.update(loggers)
