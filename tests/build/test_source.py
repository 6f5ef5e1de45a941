"""
Unit tests for engine source acquisition.
"""

from types import SimpleNamespace

import pytest

from zanbuild.build.source import SourceFetcher
from zanbuild.core.exceptions import SourceFetchError

HG_URL = "https://hg.example.org/zandronum"
ZIP_URL = "https://hg.example.org/zandronum/archive/default.zip"
SNAPSHOT = {
    "zandronum-default/CMakeLists.txt": b"project(zandronum)",
    "zandronum-default/src/main.cpp": b"int main() {}",
}


@pytest.fixture
def fetcher(fake_downloader, counting_extractor):
    return SourceFetcher(
        HG_URL, ZIP_URL, downloader=fake_downloader, extractor=counting_extractor
    )


@pytest.fixture
def source_root(tmp_path):
    return tmp_path / "src" / "zandronum"


def test_existing_checkout_untouched(mocker, fetcher, source_root, fake_downloader):
    source_root.mkdir(parents=True)
    (source_root / "CMakeLists.txt").write_text("project(zandronum)")
    mock_run = mocker.patch("zanbuild.build.source.run_command")

    assert fetcher.ensure(source_root) == source_root

    mock_run.assert_not_called()
    assert fake_downloader.calls == []


def test_hg_clone(mocker, fetcher, source_root, fake_downloader):
    def fake_clone(cmd, **kwargs):
        source_root.mkdir(parents=True)
        (source_root / "CMakeLists.txt").write_text("project(zandronum)")
        return SimpleNamespace(returncode=0)

    mocker.patch("zanbuild.build.source.shutil.which", return_value="hg")
    mock_run = mocker.patch(
        "zanbuild.build.source.run_command", side_effect=fake_clone
    )

    fetcher.ensure(source_root)

    assert mock_run.call_args[0][0] == ["hg", "clone", HG_URL, source_root]
    assert fake_downloader.calls == []


def test_zip_fallback_without_hg(mocker, fetcher, source_root, fake_downloader):
    fake_downloader.archives[ZIP_URL] = SNAPSHOT
    mocker.patch("zanbuild.build.source.shutil.which", return_value=None)

    result = fetcher.ensure(source_root)

    assert result == source_root
    assert (source_root / "CMakeLists.txt").exists()
    assert (source_root / "src" / "main.cpp").exists()
    assert fake_downloader.calls == [ZIP_URL]
    assert sorted(p.name for p in source_root.parent.iterdir()) == ["zandronum"]


def test_zip_fallback_after_failed_clone(mocker, fetcher, source_root, fake_downloader):
    fake_downloader.archives[ZIP_URL] = SNAPSHOT

    def failed_clone(cmd, **kwargs):
        source_root.mkdir(parents=True)
        (source_root / ".hg").mkdir()
        return SimpleNamespace(returncode=255)

    mocker.patch("zanbuild.build.source.shutil.which", return_value="hg")
    mocker.patch("zanbuild.build.source.run_command", side_effect=failed_clone)

    fetcher.ensure(source_root)

    assert (source_root / "CMakeLists.txt").exists()
    assert not (source_root / ".hg").exists()


def test_download_failure(mocker, fetcher, source_root):
    mocker.patch("zanbuild.build.source.shutil.which", return_value=None)

    with pytest.raises(SourceFetchError, match="Could not obtain engine source"):
        fetcher.ensure(source_root)


def test_snapshot_without_cmakelists(mocker, fetcher, source_root, fake_downloader):
    fake_downloader.archives[ZIP_URL] = {"zandronum-default/README": b"readme"}
    mocker.patch("zanbuild.build.source.shutil.which", return_value=None)

    with pytest.raises(SourceFetchError, match="has no CMakeLists.txt"):
        fetcher.ensure(source_root)


def test_failed_clone_keeps_existing_directory(mocker, fetcher, source_root, fake_downloader):
    fake_downloader.archives[ZIP_URL] = SNAPSHOT
    source_root.mkdir(parents=True)
    (source_root / "notes.txt").write_text("local notes")
    mocker.patch("zanbuild.build.source.shutil.which", return_value="hg")
    mocker.patch(
        "zanbuild.build.source.run_command",
        return_value=SimpleNamespace(returncode=255),
    )

    fetcher.ensure(source_root)

    assert (source_root / "notes.txt").read_text() == "local notes"
    assert (source_root / "CMakeLists.txt").exists()
