"""
Pytest configuration and shared fixtures for zanbuild tests.
"""

import io
import tarfile
import zipfile
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from zanbuild.core.exceptions import DownloadError
from zanbuild.core.fallback import Strategy
from zanbuild.core.filesystem import ArchiveExtractor, extract_builtin


def write_zip(path: Path, files: Dict[str, bytes]) -> Path:
    """Create a zip archive with the given member names and contents."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as zf:
        for name, content in files.items():
            zf.writestr(name, content)
    return path


def write_tar_gz(path: Path, files: Dict[str, bytes]) -> Path:
    """Create a gzip-compressed tarball with the given members."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:gz") as tar:
        for name, content in files.items():
            info = tarfile.TarInfo(name=name)
            info.size = len(content)
            tar.addfile(info, io.BytesIO(content))
    return path


class FakeDownloader:
    """
    Downloader stand-in that serves prepared archives.

    archives maps a URL to the member dict of a zip written on fetch. URLs
    not in the mapping fail like an exhausted transport chain.
    """

    def __init__(self, archives: Optional[Dict[str, Dict[str, bytes]]] = None):
        self.archives = archives or {}
        self.calls: List[str] = []

    def fetch(self, url: str, destination: Path) -> Path:
        self.calls.append(url)
        if url not in self.archives:
            raise DownloadError(url)
        return write_zip(Path(destination), self.archives[url])

    def fetch_first(self, urls: Sequence[str], destination: Path) -> Path:
        last_error = None
        for url in urls:
            try:
                return self.fetch(url, destination)
            except DownloadError as e:
                last_error = e
        raise last_error


class CountingExtractor(ArchiveExtractor):
    """ArchiveExtractor limited to Python decompressors, counting calls."""

    def __init__(self):
        super().__init__(strategies=[Strategy("builtin", extract_builtin)])
        self.calls: List[Path] = []
        self.archivers: List[Path] = []

    def extract(self, archive_path, destination):
        self.calls.append(Path(archive_path))
        super().extract(archive_path, destination)

    def use_archiver(self, archiver):
        self.archivers.append(Path(archiver))
        super().use_archiver(archiver)


@pytest.fixture
def cache_root(tmp_path):
    """Empty cache root."""
    path = tmp_path / "deps"
    path.mkdir()
    return path


@pytest.fixture
def payload_dir(tmp_path):
    """Empty payload directory."""
    path = tmp_path / "payload"
    path.mkdir()
    return path


@pytest.fixture
def counting_extractor():
    return CountingExtractor()


@pytest.fixture
def fake_downloader():
    return FakeDownloader()


@pytest.fixture
def make_zip():
    """Factory: make_zip(path, {member: bytes}) -> path"""
    return write_zip


@pytest.fixture
def make_tar_gz():
    """Factory: make_tar_gz(path, {member: bytes}) -> path"""
    return write_tar_gz
