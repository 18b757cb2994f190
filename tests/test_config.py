"""
Tests for settings loading, layering and unit parsing.
"""

import textwrap
from pathlib import Path

import pytest

from provisioner.core.config.loader import (
    ConfigError,
    ProvisionSettings,
    find_settings_file,
    load_settings,
    parse_tri_state,
    resolve_overrides,
    resolve_target,
)
from provisioner.core.config.units import GB, MB, format_size, parse_cpu_list, parse_size


class TestParseSize:
    @pytest.mark.parametrize("text,expected", [
        ("4GB", 4 * GB),
        ("512MB", 512 * MB),
        ("512MiB", 512 * MB),
        ("2g", 2 * GB),
        ("1048576", MB),
        (" 256 MB ", 256 * MB),
    ])
    def test_valid(self, text, expected):
        assert parse_size(text) == expected

    def test_int_passthrough(self):
        assert parse_size(1024) == 1024

    @pytest.mark.parametrize("text", ["", "lots", "4XB", "-1GB", "0"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_size(text)


class TestFormatSize:
    def test_whole_gigabytes(self):
        assert format_size(4 * GB) == "4GB"

    def test_megabytes(self):
        assert format_size(384 * MB) == "384MB"

    def test_fractional_gigabytes_floor_to_mb(self):
        assert format_size(GB + 512 * MB) == "1536MB"


class TestParseCpuList:
    def test_list_and_ranges(self):
        assert parse_cpu_list("0,2,4-6") == [0, 2, 4, 5, 6]

    def test_dedup_keeps_order(self):
        assert parse_cpu_list("3,1,3,0-1") == [3, 1, 0]

    @pytest.mark.parametrize("text", ["", "auto", "AUTO", "none"])
    def test_no_pinning(self, text):
        assert parse_cpu_list(text) == []

    @pytest.mark.parametrize("text", ["a", "3-1", "1-x", "-2"])
    def test_invalid(self, text):
        with pytest.raises(ValueError):
            parse_cpu_list(text)


class TestTriState:
    @pytest.mark.parametrize("value,expected", [
        ("auto", None), (None, None), ("true", True), ("YES", True), ("on", True),
        ("false", False), ("no", False), ("off", False), (True, True), (False, False),
    ])
    def test_values(self, value, expected):
        assert parse_tri_state(value) is expected

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_tri_state("maybe")


class TestLoadSettings:
    def _write(self, tmp_path: Path, content: str) -> Path:
        path = tmp_path / "provision.yml"
        path.write_text(textwrap.dedent(content))
        return path

    def test_flat_file(self, tmp_path: Path):
        path = self._write(tmp_path, """\
            target:
              data_dir: /srv/mikudb
              port: 4000
              cache_size: 2GB
            features:
              huge_pages: false
              numa: auto
              cpu_affinity: "0-3"
            skip_service: true
        """)
        settings = load_settings(path)
        assert settings.target.data_dir == Path("/srv/mikudb")
        assert settings.target.port == 4000
        assert settings.target.cache_size == 2 * GB
        assert settings.features.huge_pages is False
        assert settings.features.numa is None
        assert settings.features.cpu_affinity == [0, 1, 2, 3]
        assert settings.skip_service is True

    def test_wrapped_under_provision_key(self, tmp_path: Path):
        path = self._write(tmp_path, """\
            provision:
              lang: zh
        """)
        assert load_settings(path).lang == "zh"

    def test_empty_file(self, tmp_path: Path):
        path = self._write(tmp_path, "")
        assert load_settings(path) == ProvisionSettings()

    def test_missing_explicit_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_settings(tmp_path / "nope.yml")

    def test_invalid_yaml(self, tmp_path: Path):
        path = self._write(tmp_path, "target: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_settings(path)

    def test_not_a_mapping(self, tmp_path: Path):
        path = self._write(tmp_path, "- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_settings(path)

    def test_schema_violation_names_file(self, tmp_path: Path):
        path = self._write(tmp_path, """\
            features:
              numa: sometimes
        """)
        with pytest.raises(ConfigError, match="provision.yml"):
            load_settings(path)

    def test_no_file_in_cwd(self, tmp_path: Path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert find_settings_file() is None
        assert load_settings() == ProvisionSettings()

    def test_found_in_cwd(self, tmp_path: Path, monkeypatch):
        self._write(tmp_path, "lang: en\n")
        monkeypatch.chdir(tmp_path)
        assert find_settings_file() == tmp_path / "provision.yml"
        assert load_settings().lang == "en"


class TestResolve:
    def test_defaults(self):
        target = resolve_target()
        assert target.data_dir == Path("/var/lib/mikudb")

    def test_explicit_beats_file(self):
        settings = ProvisionSettings.model_validate(
            {"target": {"data_dir": "/from/file", "port": 4000}}
        )
        target = resolve_target(settings, data_dir=Path("/from/cli"), port=None)
        assert target.data_dir == Path("/from/cli")
        assert target.port == 4000

    def test_invalid_target(self):
        with pytest.raises(ConfigError):
            resolve_target(port=99999)

    def test_overrides_layering(self):
        settings = ProvisionSettings.model_validate(
            {"features": {"huge_pages": False, "numa": True}}
        )
        overrides = resolve_overrides(settings, numa=None, huge_pages=True)
        assert overrides.huge_pages is True
        assert overrides.numa is True

    def test_invalid_overrides(self):
        with pytest.raises(ConfigError):
            resolve_overrides(numa_node=-3)
