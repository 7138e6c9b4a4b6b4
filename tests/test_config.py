from pathlib import Path

import pytest
import yaml

import systemaddons.config as config
from systemaddons.config import (
    PipelineSettings,
    SelectionPolicy,
    WalkErrorPolicy,
    apply_env_overrides,
    load_config,
)
from systemaddons.constants import DEFAULT_AUS_URL, DEFAULT_KINTO_AUTH
from systemaddons.exceptions import ConfigFileError, ConfigValidationError

pytestmark = [pytest.mark.unit, pytest.mark.configuration]


class TestLoadConfig:
    def test_missing_default_file_yields_empty_config(self):
        assert load_config(environ={}) == {}

    def test_reads_default_file(self):
        Path(config.CONFIG_FILE).write_text(
            yaml.safe_dump({"WORKER_COUNT": 4, "LATEST_CHANNEL": "beta"}),
            encoding="utf-8",
        )
        assert load_config(environ={}) == {"WORKER_COUNT": 4, "LATEST_CHANNEL": "beta"}

    def test_explicit_missing_file_is_an_error(self, tmp_path):
        with pytest.raises(ConfigFileError):
            load_config(str(tmp_path / "nope.yaml"), environ={})

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(str(path), environ={}) == {}

    @pytest.mark.parametrize("content", ["- a\n- b\n", "key: [unclosed\n"])
    def test_invalid_documents(self, tmp_path, content):
        path = tmp_path / "bad.yaml"
        path.write_text(content, encoding="utf-8")
        with pytest.raises(ConfigFileError):
            load_config(str(path), environ={})

    def test_environment_overrides_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("KINTO_URL: https://file.example.com/v1\n", encoding="utf-8")

        loaded = load_config(
            str(path),
            environ={"KINTO_URL": "https://env.example.com/v1", "HOME": "/root"},
        )

        assert loaded == {"KINTO_URL": "https://env.example.com/v1"}

    def test_reads_process_environment(self, monkeypatch):
        monkeypatch.setenv("DELIVERY_URL", "https://mirror.example.com/pub/firefox/")
        assert load_config()["DELIVERY_URL"] == "https://mirror.example.com/pub/firefox/"


def test_apply_env_overrides_does_not_mutate_input():
    original = {"AUS_URL": "a"}
    merged = apply_env_overrides(original, {"AUS_URL": "b", "KINTO_AUTH": "Basic x"})
    assert original == {"AUS_URL": "a"}
    assert merged == {"AUS_URL": "b", "KINTO_AUTH": "Basic x"}


class TestPipelineSettings:
    def test_defaults(self):
        settings = PipelineSettings.from_config({})
        assert settings.aus_url == DEFAULT_AUS_URL
        assert settings.kinto_auth == DEFAULT_KINTO_AUTH
        assert settings.worker_count == 10
        assert settings.nightly_channels == ("central", "aurora")
        assert settings.walk_error_policy is WalkErrorPolicy.ABORT
        assert settings.latest_channel == "beta"
        assert settings.download_dir.name == "archives"

    def test_values_from_config(self, tmp_path):
        settings = PipelineSettings.from_config(
            {
                "WORKER_COUNT": 2,
                "REQUEST_TIMEOUT": 5,
                "NIGHTLY_CHANNELS": "central",
                "WALK_ERROR_POLICY": "SKIP",
                "LATEST_CHANNEL": "release",
                "DOWNLOAD_DIR": str(tmp_path / "dl"),
                "VERSION_PATTERN": r"^5[0-9]",
                "KINTO_AUTH": "",
            }
        )
        assert settings.worker_count == 2
        assert settings.request_timeout == 5.0
        assert settings.nightly_channels == ("central",)
        assert settings.walk_error_policy is WalkErrorPolicy.SKIP
        assert settings.latest_channel == "release"
        assert settings.download_dir == tmp_path / "dl"
        assert settings.kinto_auth is None
        assert settings.selection.accepts_version("52.0")
        assert not settings.selection.accepts_version("60.0")

    def test_empty_latest_channel_reads_every_channel(self):
        settings = PipelineSettings.from_config({"LATEST_CHANNEL": ""})
        assert settings.latest_channel is None

    @pytest.mark.parametrize(
        "key,value",
        [
            ("WORKER_COUNT", 0),
            ("WORKER_COUNT", "ten"),
            ("WORKER_COUNT", True),
            ("REQUEST_TIMEOUT", -1),
            ("NIGHTLY_CHANNELS", [""]),
            ("WALK_ERROR_POLICY", "retry"),
            ("TARGET_PATTERN", "linux-("),
            ("EXTRACT_PATTERN", "[unclosed"),
            ("KINTO_URL", 42),
        ],
    )
    def test_invalid_values(self, key, value):
        with pytest.raises(ConfigValidationError) as exc_info:
            PipelineSettings.from_config({key: value})
        assert exc_info.value.key in (key, "NIGHTLY_PATTERN")


class TestSelectionPolicy:
    def test_default_predicates(self):
        policy = SelectionPolicy()
        assert policy.accepts_version("52.0")
        assert not policy.accepts_version("49.0")
        assert policy.accepts_target("linux-x86_64")
        assert not policy.accepts_target("win64")
        assert policy.accepts_locale("en-US")
        assert policy.accepts_filename("firefox-52.0.tar.bz2")
        assert policy.accepts_filename("firefox-52.0.tar.gz")
        assert not policy.accepts_filename("firefox-52.0.tar.bz2.asc")

    def test_nightly_pattern_groups(self):
        match = SelectionPolicy().nightly_filename_pattern().search(
            "firefox-55.0a1.en-US.linux-x86_64.tar.bz2"
        )
        assert match is not None
        assert match.group("version") == "55.0a1"
        assert match.group("locale") == "en-US"
        assert match.group("target") == "linux-x86_64"

    def test_nightly_pattern_escapes_product(self):
        pattern = SelectionPolicy(product="fire.fox").nightly_filename_pattern()
        assert pattern.search("fireXfox-55.0a1.en-US.linux-x86_64.tar.bz2") is None
