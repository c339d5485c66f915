import os
import time
import pytest
import yaml
from datetime import datetime
from pathlib import Path
from folderize.config.models import AppConfig
from folderize.domain.models import FileStats, FilingDateSource, MediaFile
from folderize.infrastructure.event_bus import EventBus

# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Returns a sample AppConfig object for testing."""
    return AppConfig(
        general={
            "ignored_files": [".DS_Store", "Thumbs.db"],
            "image_extensions": [".jpg", ".jpeg", ".heic"],
            "video_extensions": [".mov", ".mp4", ".avi"],
            "stability_threshold_s": 5,
            "convert_videos": False,
            "delete_originals": False,
            "stop_on_error": False,
            "debug": False,
        },
        video={
            "nice": None,
        },
    )


@pytest.fixture
def config_yaml_path(tmp_path):
    """Creates a temporary YAML config file."""
    config_data = {
        "general": {
            "image_extensions": ["jpg", "HEIC"],
            "video_extensions": ["mov", "mp4"],
            "stability_threshold_s": 2,
            "continuous_interval_s": 60,
            "delete_originals": True,
        },
        "video": {
            "crf": 20,
            "preset": "slow",
            "nice": 10,
        },
    }
    config_file = tmp_path / "test_config.yaml"
    with open(config_file, "w") as f:
        yaml.dump(config_data, f)
    return config_file


# ============================================================================
# Event Bus Fixtures
# ============================================================================

@pytest.fixture
def event_bus():
    """Returns a fresh EventBus instance."""
    return EventBus()


# ============================================================================
# Filesystem Fixtures
# ============================================================================

@pytest.fixture
def test_input_dir(tmp_path):
    """Creates a temporary source directory."""
    input_dir = tmp_path / "input"
    input_dir.mkdir()
    return input_dir


@pytest.fixture
def archive_dir(tmp_path):
    """Creates a temporary archive root."""
    archive = tmp_path / "archive"
    archive.mkdir()
    return archive


def _age(path: Path, seconds: float):
    stamp = time.time() - seconds
    os.utime(path, (stamp, stamp))


@pytest.fixture
def age_file():
    """Backdates mtime (and atime) of a path by the given number of seconds."""
    return _age


def _media_file(path: Path, filing_date: datetime, source=FilingDateSource.FILESYSTEM) -> MediaFile:
    st = path.stat()
    stats = FileStats(
        size_bytes=st.st_size,
        created_at=datetime.fromtimestamp(st.st_mtime),
        modified_at=datetime.fromtimestamp(st.st_mtime),
        accessed_at=datetime.fromtimestamp(st.st_atime),
    )
    return MediaFile(path=path, stats=stats, filing_date=filing_date, filing_date_source=source)


@pytest.fixture
def make_media_file():
    """Builds a MediaFile for an existing file with an explicit filing date."""
    return _media_file


@pytest.fixture
def stale_tree(test_input_dir):
    """Source tree with a mix of images, videos and junk, all older than the stability threshold."""
    files = {
        "a.jpg": b"jpeg-a",
        "sub/b.heic": b"heic-b",
        "sub/clip.mp4": b"mp4-data",
        "sub/deeper/c.JPG": b"jpeg-c",
        ".DS_Store": b"junk",
        "notes.txt": b"text",
    }
    for rel, data in files.items():
        path = test_input_dir / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        _age(path, 600)
    return test_input_dir


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
