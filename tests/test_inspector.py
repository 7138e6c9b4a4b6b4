import dataclasses
import os

import pytest

from systemaddons.exceptions import (
    CatalogUnavailableError,
    CorruptedArchiveError,
    FileSystemError,
    MetadataMissingError,
    PathValidationError,
)
from systemaddons.pipeline.catalog import UpdateCatalogClient
from systemaddons.pipeline.inspector import ReleaseInspector
from systemaddons.pipeline.interfaces import SystemAddon

pytestmark = [pytest.mark.unit, pytest.mark.core_downloads]


@pytest.fixture
def catalog(mocker):
    catalog = mocker.Mock(spec=UpdateCatalogClient)
    catalog.fetch_updates.return_value = [SystemAddon("flyweb@mozilla.org", "1.0.1")]
    return catalog


@pytest.fixture
def inspector(tmp_path, mock_session, catalog):
    return ReleaseInspector(mock_session, catalog, tmp_path / "archives")


@pytest.fixture
def cached_archive(inspector, sample_release, release_archive):
    """Place a release archive at the inspector's cache path."""

    def _place(**kwargs):
        built = release_archive(**kwargs)
        path = inspector.local_path(sample_release)
        path.parent.mkdir(parents=True, exist_ok=True)
        os.replace(built, path)
        return path

    return _place


def test_local_path_layout(inspector, sample_release, tmp_path):
    assert inspector.local_path(sample_release) == (
        tmp_path / "archives" / "linux-x86_64" / "en-US" / "firefox-52.0.tar.bz2"
    )


def test_local_path_rejects_traversal(inspector, sample_release):
    release = dataclasses.replace(sample_release, target="..")
    with pytest.raises(PathValidationError):
        inspector.local_path(release)


def test_metadata_and_two_manifests_give_two_builtins(
    inspector, sample_release, cached_archive, catalog, mock_session
):
    cached_archive(
        addons=[("flyweb@mozilla.org", "1.0"), ("pocket@mozilla.org", "1.0.5")]
    )

    info = inspector.inspect(sample_release)

    assert info.builtins == (
        SystemAddon("flyweb@mozilla.org", "1.0"),
        SystemAddon("pocket@mozilla.org", "1.0.5"),
    )
    assert info.updates == (SystemAddon("flyweb@mozilla.org", "1.0.1"),)
    assert info.release.build_id == "20170302120751"
    assert info.release.channel == "release"
    # The cached archive is reused without a download
    mock_session.get.assert_not_called()

    # The catalog is queried with the completed release
    queried_release, builtins = catalog.fetch_updates.call_args.args
    assert queried_release.build_id == "20170302120751"
    assert list(builtins) == list(info.builtins)


def test_metadata_after_manifests(
    inspector, sample_release, cached_archive, application_ini
):
    cached_archive(
        application_ini=None,
        addons=[("flyweb@mozilla.org", "1.0"), ("pocket@mozilla.org", "1.0.5")],
        extra={"firefox/application.ini": application_ini.encode("utf-8")},
    )

    info = inspector.inspect(sample_release)

    assert len(info.builtins) == 2
    assert info.release.channel == "release"


def test_archive_without_metadata(inspector, sample_release, cached_archive, catalog):
    cached_archive(application_ini=None, addons=[("flyweb@mozilla.org", "1.0")])

    with pytest.raises(MetadataMissingError):
        inspector.inspect(sample_release)
    catalog.fetch_updates.assert_not_called()


def test_broken_addon_fails_release(inspector, sample_release, cached_archive):
    cached_archive(extra={"firefox/browser/features/broken.xpi": b"not a zip"})

    with pytest.raises(CorruptedArchiveError):
        inspector.inspect(sample_release)


def test_catalog_failure_propagates(inspector, sample_release, cached_archive, catalog):
    cached_archive()
    catalog.fetch_updates.side_effect = CatalogUnavailableError(
        "Could not fetch updates list", status_code=500
    )

    with pytest.raises(CatalogUnavailableError):
        inspector.inspect(sample_release)


def test_scratch_directory_is_removed(
    inspector, sample_release, cached_archive, mocker, tmp_path
):
    cached_archive(addons=[("flyweb@mozilla.org", "1.0")])
    scratch_root = tmp_path / "scratch-root"
    scratch_root.mkdir()
    mocker.patch("tempfile.tempdir", str(scratch_root))

    inspector.inspect(sample_release)

    assert list(scratch_root.iterdir()) == []


def test_downloads_missing_archive(
    inspector, sample_release, mock_session, make_response, release_archive
):
    data = release_archive(addons=[("flyweb@mozilla.org", "1.0")]).read_bytes()
    mock_session.get.return_value = make_response(chunks=[data])

    info = inspector.inspect(sample_release)

    mock_session.get.assert_called_once()
    assert mock_session.get.call_args.args == (sample_release.url,)
    assert inspector.local_path(sample_release).read_bytes() == data
    assert info.builtins == (SystemAddon("flyweb@mozilla.org", "1.0"),)


def test_scratch_directory_failure_is_a_filesystem_error(
    inspector, sample_release, cached_archive, mocker, catalog
):
    cached_archive()
    mocker.patch(
        "tempfile.TemporaryDirectory", side_effect=PermissionError("read-only /tmp")
    )

    with pytest.raises(FileSystemError):
        inspector.inspect(sample_release)
    catalog.fetch_updates.assert_not_called()


def test_unusable_download_dir_is_a_filesystem_error(
    tmp_path, mock_session, catalog, sample_release
):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    inspector = ReleaseInspector(mock_session, catalog, blocker)

    with pytest.raises(FileSystemError):
        inspector.inspect(sample_release)
