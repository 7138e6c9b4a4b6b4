import io
import tarfile
import time
import zipfile
from pathlib import Path

import platformdirs
import pytest
import requests

_NETWORK_BLOCK_MSG = (
    "Network access is blocked during tests. Mock requests.* or Session.request."
)

APPLICATION_INI = """[App]
Vendor=Mozilla
Name=Firefox
Version=52.0
BuildID=20170302120751
SourceRepository=https://hg.mozilla.org/releases/mozilla-release
SourceStamp=44d6a57ab554308585a67a13035d31b264be781e
"""

INSTALL_RDF_TEMPLATE = """<?xml version="1.0"?>
<RDF xmlns="http://www.w3.org/1999/02/22-rdf-syntax-ns#"
     xmlns:em="http://www.mozilla.org/2004/em-rdf#">
  <Description about="urn:mozilla:install-manifest">
    <em:id>{addon_id}</em:id>
    <em:version>{version}</em:version>
    <em:type>2</em:type>
    <em:targetApplication>
      <Description>
        <em:id>{{ec8030f7-c20a-464f-9b0e-13a3a9e97384}}</em:id>
        <em:minVersion>52.0</em:minVersion>
        <em:maxVersion>52.*</em:maxVersion>
      </Description>
    </em:targetApplication>
  </Description>
</RDF>
"""


def _block_network(*_args, **_kwargs):
    """
    Prevent network calls in tests by raising a RuntimeError.

    Raises:
        RuntimeError: with `_NETWORK_BLOCK_MSG` indicating that network access is blocked during tests.
    """
    raise RuntimeError(_NETWORK_BLOCK_MSG)


def pytest_configure(config):
    """
    Register the markers used to group the test suite.

    Parameters:
        config: pytest.Config
            The pytest configuration object.
    """
    for marker in (
        "unit: fast tests without I/O beyond tmp_path",
        "integration: tests exercising several components together",
        "core_downloads: discovery, inspection and publication tests",
        "configuration: configuration loading and validation tests",
    ):
        config.addinivalue_line("markers", marker)


@pytest.fixture(autouse=True)
def _isolate_test_environment(tmp_path_factory, monkeypatch):
    """
    Create an isolated temporary config/cache/log layout and point platformdirs and the config module at it.

    Also clears the environment variables that override configuration values
    so a developer's shell cannot leak into the tests.
    """
    base = tmp_path_factory.mktemp("systemaddons")
    cache_dir = base / "cache"
    config_dir = base / "config"
    log_dir = base / "log"

    for path in (cache_dir, config_dir, log_dir):
        path.mkdir(parents=True, exist_ok=True)

    for key in ("DELIVERY_URL", "AUS_URL", "KINTO_URL", "KINTO_AUTH"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("SYSTEMADDONS_LOG_LEVEL", raising=False)

    monkeypatch.setattr(
        platformdirs, "user_cache_dir", lambda *_args, **_kwargs: str(cache_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_config_dir", lambda *_args, **_kwargs: str(config_dir)
    )
    monkeypatch.setattr(
        platformdirs, "user_log_dir", lambda *_args, **_kwargs: str(log_dir)
    )

    import systemaddons.config as config

    monkeypatch.setattr(config, "CONFIG_DIR", str(config_dir))
    monkeypatch.setattr(
        config, "CONFIG_FILE", str(Path(config_dir) / config.CONFIG_FILE_NAME)
    )


def pytest_runtest_setup():
    """
    Prevent real network requests during tests by replacing HTTP entry points with blocking callables.
    """
    requests.get = _block_network
    requests.post = _block_network
    requests.put = _block_network
    requests.delete = _block_network
    requests.head = _block_network
    requests.patch = _block_network
    requests.options = _block_network
    requests.Session.request = _block_network


@pytest.fixture(autouse=True)
def _mock_time_sleep(monkeypatch):
    """
    Make time.sleep instant for all tests to prevent delays.
    """
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)


# =============================================================================
# HTTP Fixtures
# =============================================================================


@pytest.fixture
def make_response(mocker):
    """
    Provide a factory that creates mocked requests.Response objects.

    The factory accepts `status`, `json_data`, `content`, `headers` and
    `chunks`; `json()` raises ValueError when `json_data` is None, mirroring a
    non-JSON body.
    """

    def _create_response(
        status=200, json_data=None, content=b"", headers=None, chunks=None
    ):
        response = mocker.Mock(spec=requests.Response)
        response.status_code = status
        response.headers = headers or {}
        response.content = content
        if json_data is None:
            response.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            response.json.return_value = json_data
        response.iter_content.return_value = iter(chunks or [])
        return response

    return _create_response


@pytest.fixture
def mock_session(mocker):
    """Provide a MagicMock standing in for a requests.Session."""
    return mocker.MagicMock(spec=requests.Session)


# =============================================================================
# Archive Fixtures
# =============================================================================


def build_xpi(path: Path, addon_id: str, version: str, manifest: bool = True) -> Path:
    """Write an addon package (zip) whose install.rdf names `addon_id` and `version`."""
    with zipfile.ZipFile(path, "w") as package:
        if manifest:
            package.writestr(
                "install.rdf",
                INSTALL_RDF_TEMPLATE.format(addon_id=addon_id, version=version),
            )
        package.writestr("bootstrap.js", "// addon code\n")
    return path


def _add_bytes(archive: tarfile.TarFile, name: str, data: bytes, mode: int = 0o644):
    info = tarfile.TarInfo(name)
    info.size = len(data)
    info.mode = mode
    archive.addfile(info, io.BytesIO(data))


def build_release_archive(path: Path, addons=(), application_ini=APPLICATION_INI, extra=None):
    """
    Write a bzip2 release archive laid out like a Firefox Linux build.

    Parameters:
        path: Destination of the archive.
        addons: Iterable of (addon id, version) pairs packaged under browser/features.
        application_ini: Metadata file content, omitted when None.
        extra: Mapping of additional member names to byte content.
    """
    scratch = path.parent / f"{path.name}.parts"
    scratch.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, "w:bz2") as archive:
        _add_bytes(archive, "firefox/firefox", b"\x7fELF binary", mode=0o755)
        if application_ini is not None:
            _add_bytes(archive, "firefox/application.ini", application_ini.encode("utf-8"))
        for addon_id, version in addons:
            xpi_path = build_xpi(scratch / f"{addon_id}.xpi", addon_id, version)
            _add_bytes(
                archive,
                f"firefox/browser/features/{addon_id}.xpi",
                xpi_path.read_bytes(),
            )
        for name, data in (extra or {}).items():
            _add_bytes(archive, name, data)
    return path


@pytest.fixture
def release_archive(tmp_path):
    """Provide the build_release_archive helper bound to a tmp_path location."""

    def _create(name="firefox-52.0.tar.bz2", **kwargs):
        return build_release_archive(tmp_path / name, **kwargs)

    return _create


@pytest.fixture
def sample_release():
    """Fixture providing the release discovered for Firefox 52.0 on Linux."""
    from systemaddons.pipeline.interfaces import Release

    return Release(
        url="https://archive.mozilla.org/pub/firefox/releases/52.0/linux-x86_64/en-US/firefox-52.0.tar.bz2",
        version="52.0",
        target="linux-x86_64",
        locale="en-US",
        filename="firefox-52.0.tar.bz2",
    )


@pytest.fixture
def application_ini():
    """Provide the application.ini content of a Firefox 52.0 release build."""
    return APPLICATION_INI


@pytest.fixture
def make_xpi(tmp_path):
    """Provide the build_xpi helper writing packages under tmp_path."""

    def _create(name, addon_id, version, manifest=True):
        return build_xpi(tmp_path / name, addon_id, version, manifest=manifest)

    return _create
