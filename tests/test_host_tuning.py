"""
Tests for kernel tuning, binary placement and the service account.
"""

import os
from pathlib import Path

import pytest

from provisioner.adapters.mock import MockAdapter
from provisioner.core.models.features import FeatureFlags
from provisioner.core.models.target import InstallTarget
from provisioner.core.services.artifacts import (
    ensure_service_user,
    place_binaries,
    prepare_directories,
    remove_binaries,
    remove_config,
)
from provisioner.core.services.host_tuning import (
    HUGE_PAGES_COUNT,
    TCP_SYSCTLS,
    apply_tuning,
    dropin_path,
    remove_tuning,
    tuning_params,
)

# ── Kernel tuning ────────────────────────────────────────────────────


class TestTuningParams:
    def test_nothing_requested(self):
        assert tuning_params(FeatureFlags()) == {}

    def test_huge_pages_and_tcp(self):
        params = tuning_params(FeatureFlags(enable_huge_pages=True, tcp_tuning=True))
        assert params["vm.nr_hugepages"] == str(HUGE_PAGES_COUNT)
        assert params["net.core.somaxconn"] == "4096"
        assert len(params) == len(TCP_SYSCTLS) + 1


class TestApplyTuning:
    def test_noop_without_flags(self, target, adapter, tmp_path):
        outcome = apply_tuning(target, FeatureFlags(), adapter=adapter, sysctl_dir=tmp_path)
        assert outcome.path is None
        assert adapter.call_count == 0

    def test_writes_dropin_and_loads(self, target, adapter, tmp_path, host_tree):
        paths = host_tree(hugepages=str(HUGE_PAGES_COUNT))
        flags = FeatureFlags(enable_huge_pages=True, tcp_tuning=True)
        outcome = apply_tuning(
            target, flags, adapter=adapter, sysctl_dir=tmp_path / "sysctl.d", paths=paths,
        )
        text = outcome.path.read_text()
        assert outcome.path == tmp_path / "sysctl.d" / "99-mikudb.conf"
        assert "vm.nr_hugepages = 1024" in text
        assert "net.ipv4.tcp_tw_reuse = 1" in text
        assert adapter.ran("sysctl", "-p", str(outcome.path))
        assert outcome.huge_pages_reserved == HUGE_PAGES_COUNT
        assert not outcome.huge_pages_short
        assert outcome.warnings == []

    def test_short_reservation(self, target, adapter, tmp_path, host_tree):
        paths = host_tree(hugepages="200")
        outcome = apply_tuning(
            target, FeatureFlags(enable_huge_pages=True),
            adapter=adapter, sysctl_dir=tmp_path, paths=paths,
        )
        assert outcome.huge_pages_short
        assert any("200 of 1024" in w for w in outcome.warnings)

    def test_sysctl_failure_is_warning(self, target, adapter, tmp_path):
        adapter.set_failure(["sysctl", "-p"], error="permission denied")
        outcome = apply_tuning(
            target, FeatureFlags(tcp_tuning=True), adapter=adapter, sysctl_dir=tmp_path,
        )
        assert outcome.path.exists()
        assert any("permission denied" in w for w in outcome.warnings)


class TestRemoveTuning:
    def test_missing_dropin(self, target, adapter, tmp_path):
        assert remove_tuning(target, adapter=adapter, sysctl_dir=tmp_path) == []
        assert adapter.call_count == 0

    def test_releases_huge_pages(self, target, adapter, tmp_path):
        path = dropin_path(target, tmp_path)
        path.write_text("vm.nr_hugepages = 1024\n")
        remove_tuning(target, adapter=adapter, sysctl_dir=tmp_path)
        assert not path.exists()
        assert adapter.ran("sysctl", "-w", "vm.nr_hugepages=0")

    def test_tcp_only(self, target, adapter, tmp_path):
        path = dropin_path(target, tmp_path)
        path.write_text("net.core.somaxconn = 4096\n")
        remove_tuning(target, adapter=adapter, sysctl_dir=tmp_path)
        assert not path.exists()
        assert not adapter.ran("sysctl", "-w")


# ── Artifacts ────────────────────────────────────────────────────────


class TestPlaceBinaries:
    def test_installs_both(self, target, artifact_dir):
        placed = place_binaries(artifact_dir, target)
        assert placed == [target.server_binary, target.cli_binary]
        assert os.access(target.server_binary, os.X_OK)
        assert target.server_binary.read_text().startswith("#!/bin/sh")

    def test_cli_optional(self, target, artifact_dir):
        (artifact_dir / "mikudb-cli").unlink()
        assert place_binaries(artifact_dir, target) == [target.server_binary]

    def test_server_required(self, target, tmp_path):
        with pytest.raises(FileNotFoundError):
            place_binaries(tmp_path / "empty", target)

    def test_overwrite(self, target, artifact_dir):
        target.install_dir.mkdir(parents=True)
        target.server_binary.write_text("old")
        place_binaries(artifact_dir, target)
        assert target.server_binary.read_text() != "old"
        assert not list(target.install_dir.glob(".*.tmp"))


class TestRemoval:
    def test_remove_binaries(self, target, artifact_dir):
        place_binaries(artifact_dir, target)
        assert remove_binaries(target) == [target.server_binary, target.cli_binary]
        assert not target.server_binary.exists()

    def test_remove_config_keeps_data(self, target):
        target.config_dir.mkdir(parents=True)
        target.config_file.write_text("x")
        target.storage_dir.mkdir(parents=True)
        assert remove_config(target) == []
        assert not target.config_dir.exists()
        assert target.storage_dir.exists()

    def test_data_inside_config_dir_is_protected(self, tmp_path):
        target = InstallTarget(
            install_dir=tmp_path / "bin",
            config_dir=tmp_path / "mikudb",
            data_dir=tmp_path / "mikudb" / "data",
            windows=False,
        )
        target.storage_dir.mkdir(parents=True)
        target.config_file.write_text("x")
        warnings = remove_config(target)
        assert warnings
        assert not target.config_file.exists()
        assert target.storage_dir.exists()


class TestServiceAccount:
    def test_existing_user(self):
        adapter = MockAdapter()
        receipt = ensure_service_user(adapter, "mikudb")
        assert receipt.status == "skipped"
        assert not adapter.ran("useradd")

    def test_creates_user(self):
        adapter = MockAdapter()
        adapter.set_failure(["id"], error="no such user")
        receipt = ensure_service_user(adapter, "mikudb")
        assert receipt.ok
        assert adapter.ran("useradd", "-r", "-s", "/bin/false", "mikudb")


class TestPrepareDirectories:
    def test_creates_layout(self, target, adapter):
        assert prepare_directories(target, adapter=adapter) == []
        assert target.storage_dir.is_dir()
        assert target.log_dir.is_dir()
        assert target.config_dir.is_dir()
        assert adapter.ran("chown", "-R", "mikudb:mikudb", str(target.data_dir))

    def test_chown_failure_is_warning(self, target, adapter):
        adapter.set_failure(["chown"], error="invalid user")
        warnings = prepare_directories(target, adapter=adapter)
        assert any("invalid user" in w for w in warnings)

    def test_windows_skips_chown(self, tmp_path: Path, adapter):
        target = InstallTarget(
            install_dir=tmp_path, data_dir=tmp_path / "data", config_dir=tmp_path / "etc",
            windows=True,
        )
        prepare_directories(target, adapter=adapter)
        assert not adapter.ran("chown")
