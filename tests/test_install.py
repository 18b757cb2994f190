"""
Tests for the install orchestrator.

Every run uses a MockAdapter, a systemd registrar writing into a temp
unit directory and an injected host probe, so nothing touches the real
machine.
"""

import tomllib
from pathlib import Path

import pytest

from provisioner.core.models.features import FeatureOverrides
from provisioner.core.models.install_state import ComponentState
from provisioner.core.use_cases.install import InstallOptions, run_install
from provisioner.core.use_cases.result import ProvisionStatus

MUTATING = {"start", "stop", "enable", "disable", "daemon-reload", "-p", "-w", "-R", "-r"}


def _mutations(adapter) -> list[list[str]]:
    return [c for c in adapter.call_log if len(c) > 1 and c[1] in MUTATING]


class _Confirm:
    def __init__(self, answer: bool):
        self.answer = answer
        self.calls = []

    def __call__(self, existing):
        self.calls.append(existing)
        return self.answer


@pytest.fixture
def options(target, artifact_dir, tmp_path, host_tree):
    return InstallOptions(
        target=target,
        artifact_dir=artifact_dir,
        sysctl_dir=tmp_path / "sysctl.d",
        host_paths=host_tree(hugepages="1024"),
    )


@pytest.fixture
def install(adapter, registrar, generic_caps):
    """Run an install with test collaborators; keyword args override them."""

    def runner(options, **kwargs):
        kwargs.setdefault("adapter", adapter)
        kwargs.setdefault("registrar", registrar)
        kwargs.setdefault("confirm", _Confirm(True))
        kwargs.setdefault("privileged", lambda: True)
        kwargs.setdefault("prober", lambda: generic_caps)
        kwargs.setdefault("sleep", lambda seconds: None)
        return run_install(options, **kwargs)

    return runner


def _previous_install(target, unit_dir: Path) -> None:
    target.install_dir.mkdir(parents=True)
    target.server_binary.write_text("old binary")
    target.config_dir.mkdir(parents=True)
    target.config_file.write_text("port = 1\n")
    unit_dir.mkdir(parents=True)
    (unit_dir / "mikudb.service").write_text("[Unit]\nDescription=old\n")


class TestCleanInstall:
    def test_success(self, install, options, adapter, target, unit_dir):
        adapter.set_output(["systemctl", "is-active"], "active")
        adapter.set_output([str(target.server_binary), "--version"], "mikudb-server 0.1.0")

        result = install(options)

        assert result.status is ProvisionStatus.SUCCESS
        assert result.exit_code == 0
        assert result.verified is True
        assert result.server_version == "mikudb-server 0.1.0"
        assert target.server_binary.is_file()
        assert target.storage_dir.is_dir()
        assert (unit_dir / "mikudb.service").is_file()
        assert adapter.ran("systemctl", "enable", "mikudb")

    def test_phase_order(self, install, options, adapter):
        adapter.set_output(["systemctl", "is-active"], "active")
        result = install(options)
        assert result.phases == [
            "start", "detect-existing", "clean", "prerequisites", "probing",
            "resolving", "tuning", "generating", "placing", "registering",
            "verifying", "done",
        ]

    def test_clean_host_is_not_asked(self, install, options, adapter):
        adapter.set_output(["systemctl", "is-active"], "active")
        confirm = _Confirm(False)
        result = install(options, confirm=confirm)
        assert confirm.calls == []
        assert result.ok

    def test_config_written(self, install, options, adapter, target):
        adapter.set_output(["systemctl", "is-active"], "active")
        result = install(options)
        doc = tomllib.loads(target.config_file.read_text())
        assert result.config_path == target.config_file
        assert doc["port"] == 3939
        assert doc["max_connections"] == 10000
        assert doc["storage"]["cache_size"] == "2GB"

    def test_service_user_and_ownership(self, install, options, adapter, target):
        adapter.set_output(["systemctl", "is-active"], "active")
        adapter.set_failure(["id"], error="no such user")
        install(options)
        assert adapter.ran("useradd", "-r", "-s", "/bin/false", "mikudb")
        assert adapter.ran("chown", "-R", "mikudb:mikudb", str(target.data_dir))

    def test_tcp_tuning_applied(self, install, options, adapter):
        adapter.set_output(["systemctl", "is-active"], "active")
        install(options)
        dropin = options.sysctl_dir / "99-mikudb.conf"
        assert "net.core.somaxconn = 4096" in dropin.read_text()
        assert adapter.ran("sysctl", "-p", str(dropin))


class TestNumaHost:
    def test_numa_profile(self, install, options, adapter, target, unit_dir, numa_caps):
        adapter.set_output(["systemctl", "is-active"], "active")
        result = install(options, prober=lambda: numa_caps)

        assert result.warnings == []
        assert result.flags.enable_huge_pages
        text = target.config_file.read_text()
        assert text.startswith("# MikuDB NUMA Optimized Configuration")
        assert tomllib.loads(text)["openeuler"]["huge_pages_size_mb"] == 2048
        unit = (unit_dir / "mikudb.service").read_text()
        assert "--cpunodebind=0 --membind=0" in unit
        assert "LimitNOFILE=1048576" in unit

    def test_short_huge_page_reservation_disables_flag(
        self, install, target, artifact_dir, adapter, tmp_path, host_tree, numa_caps,
    ):
        adapter.set_output(["systemctl", "is-active"], "active")
        options = InstallOptions(
            target=target, artifact_dir=artifact_dir,
            sysctl_dir=tmp_path / "sysctl.d", host_paths=host_tree(hugepages="0"),
        )
        result = install(options, prober=lambda: numa_caps)

        assert result.ok
        assert result.flags.enable_huge_pages is False
        assert "huge pages disabled: reservation failed" in result.warnings
        doc = tomllib.loads(target.config_file.read_text())
        assert doc["openeuler"]["enable_huge_pages"] is False

    def test_forced_huge_pages_survive_short_reservation(
        self, install, target, artifact_dir, adapter, tmp_path, host_tree, numa_caps,
    ):
        adapter.set_output(["systemctl", "is-active"], "active")
        options = InstallOptions(
            target=target, artifact_dir=artifact_dir,
            overrides=FeatureOverrides(huge_pages=True),
            sysctl_dir=tmp_path / "sysctl.d", host_paths=host_tree(hugepages="0"),
        )
        result = install(options, prober=lambda: numa_caps)
        assert result.flags.enable_huge_pages is True


class TestExistingInstall:
    def test_confirmation_precedes_mutation(self, install, options, adapter, target, unit_dir):
        _previous_install(target, unit_dir)
        confirm = _Confirm(False)

        result = install(options, confirm=confirm)

        assert len(confirm.calls) == 1
        assert confirm.calls[0].config.present
        assert result.status is ProvisionStatus.CANCELLED
        assert result.exit_code == 3
        assert result.phases[-1] == "cancelled"
        assert target.config_file.read_text() == "port = 1\n"
        assert target.server_binary.read_text() == "old binary"
        assert (unit_dir / "mikudb.service").exists()
        assert _mutations(adapter) == []

    def test_declined_with_running_service_and_no_config(
        self, install, options, adapter, target, unit_dir, tmp_path,
    ):
        target.install_dir.mkdir(parents=True)
        target.server_binary.write_text("old binary")
        unit_dir.mkdir(parents=True)
        (unit_dir / "mikudb.service").write_text("[Unit]\nDescription=old\n")
        adapter.set_output(["systemctl", "is-active"], "active")
        adapter.set_output([str(target.server_binary), "--version"], "mikudb-server 0.0.9")
        confirm = _Confirm(False)

        result = install(options, confirm=confirm)

        existing = confirm.calls[0]
        assert existing.service is ComponentState.RUNNING
        assert existing.binary is ComponentState.RUNNING
        assert existing.config is ComponentState.ABSENT
        assert existing.binary_version == "mikudb-server 0.0.9"
        assert result.status is ProvisionStatus.CANCELLED
        assert result.exit_code == 3
        assert "prerequisites" not in result.phases
        assert _mutations(adapter) == []
        systemctl = {c[1] for c in adapter.call_log if c[0] == "systemctl"}
        assert systemctl <= {"is-active", "list-unit-files"}
        assert target.server_binary.read_text() == "old binary"
        assert (unit_dir / "mikudb.service").read_text() == "[Unit]\nDescription=old\n"
        assert not target.config_dir.exists()
        assert not target.data_dir.exists()
        assert not (tmp_path / "sysctl.d").exists()

    def test_reinstall_replaces_and_keeps_data(self, install, options, adapter, target, unit_dir):
        _previous_install(target, unit_dir)
        target.storage_dir.mkdir(parents=True)
        (target.storage_dir / "000001.sst").write_text("data")
        # detect, deregister and register see it stopped; verification sees it up
        adapter.set_output(["systemctl", "is-active"], "inactive", "inactive", "inactive", "active")

        result = install(options)

        assert result.ok
        assert "uninstalling" in result.phases
        assert result.phases.index("uninstalling") < result.phases.index("probing")
        assert (target.storage_dir / "000001.sst").read_text() == "data"
        assert target.server_binary.read_text() != "old binary"
        assert "Description=old" not in (unit_dir / "mikudb.service").read_text()

    def test_still_running_service_aborts(self, install, options, adapter, target, unit_dir):
        _previous_install(target, unit_dir)
        adapter.set_output(["systemctl", "is-active"], "active")
        adapter.set_failure(["systemctl", "stop"], error="Access denied")

        result = install(options)

        assert result.status is ProvisionStatus.FAILED
        assert result.exit_code == 2
        assert "still running" in result.error
        assert target.config_file.exists()


class TestPrerequisites:
    def test_unprivileged(self, install, options, adapter, target):
        result = install(options, privileged=lambda: False)
        assert result.exit_code == 1
        assert result.status is ProvisionStatus.FAILED
        assert "privileges" in result.error
        assert not target.config_dir.exists()
        assert not target.install_dir.exists()
        assert _mutations(adapter) == []

    def test_missing_artifact(self, install, target, tmp_path):
        options = InstallOptions(target=target, artifact_dir=tmp_path / "nothing")
        result = install(options)
        assert result.exit_code == 1
        assert "cargo build --release" in result.error
        assert not target.install_dir.exists()

    def test_no_supervisor(self, install, options, adapter):
        adapter.set_tools({"sysctl"})
        result = install(options)
        assert result.exit_code == 1
        assert "--skip-service" in result.error

    def test_no_supervisor_with_skip_service(self, install, target, artifact_dir, adapter, tmp_path):
        adapter.set_tools(set())
        options = InstallOptions(
            target=target, artifact_dir=artifact_dir,
            skip_service=True, sysctl_dir=tmp_path / "sysctl.d",
        )
        result = install(options)
        assert result.ok
        assert result.phases[-2:] == ["placing", "done"]
        assert "service registration skipped (--skip-service)" in result.warnings


class TestFailures:
    def test_service_user_failure(self, install, options, adapter, target):
        adapter.set_failure(["id"], error="no such user")
        adapter.set_failure(["useradd"], error="useradd: cannot lock /etc/passwd")
        result = install(options)
        assert result.exit_code == 2
        assert "cannot lock" in result.error

    def test_registration_failure_keeps_files(self, install, options, adapter, target):
        adapter.set_failure(["systemctl", "enable"], error="Unit file is masked")
        result = install(options)
        assert result.status is ProvisionStatus.FAILED
        assert result.exit_code == 2
        assert "masked" in result.error
        assert target.config_file.exists()
        assert target.server_binary.exists()
        assert "verifying" not in result.phases


class TestVerification:
    def test_timeout_is_a_warning(self, install, options, target):
        sleeps = []
        result = install(options, sleep=sleeps.append)
        assert result.ok
        assert result.verified is False
        assert sleeps == [1.0, 2.0, 4.0]
        assert any(
            "not running after 3 checks" in w and "journalctl -u mikudb" in w
            for w in result.warnings
        )

    def test_strict_verify_fails(self, install, target, artifact_dir, tmp_path):
        options = InstallOptions(
            target=target, artifact_dir=artifact_dir,
            strict_verify=True, sysctl_dir=tmp_path / "sysctl.d",
        )
        result = install(options)
        assert result.exit_code == 2
        assert result.verified is False
        assert target.config_file.exists()

    def test_late_start(self, install, options, adapter):
        adapter.set_output(["systemctl", "is-active"], "inactive", "activating", "active")
        result = install(options)
        assert result.verified is True

    def test_to_dict(self, install, options, adapter):
        adapter.set_output(["systemctl", "is-active"], "active")
        data = install(options).to_dict()
        assert data["status"] == "success"
        assert data["exit_code"] == 0
        assert data["capabilities"]["os_family"] == "generic-linux"
        assert data["flags"]["tcp_tuning"] is True
        assert data["config"]["server"]["port"] == 3939
