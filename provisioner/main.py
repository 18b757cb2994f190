"""
MikuDB provisioner — CLI entrypoint.

Usage:
    mikudb-provision --help
    sudo mikudb-provision install
    sudo mikudb-provision uninstall --yes
    mikudb-provision status
    mikudb-provision probe --json
    mikudb-provision config render

Options mirror the environment variables of the classic install
scripts (INSTALL_DIR, DATA_DIR, CONFIG_DIR, SERVICE_USER, SKIP_SERVICE,
UNINSTALL, ENABLE_HUGEPAGES, ENABLE_NUMA, CPU_AFFINITY, ...).
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path

import click

from provisioner import __version__
from provisioner.core.observability.logging_config import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="mikudb-provision")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option("--lang", default=None, help="Message language: en or zh (default: from $LANG).")
@click.option(
    "--settings",
    "-s",
    "settings_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to provision.yml (default: ./provision.yml if present).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    lang: str | None,
    settings_path: str | None,
) -> None:
    """MikuDB provisioner — install, tune and register the database service."""
    from provisioner.core.services.messages import select_language

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["lang_arg"] = lang
    ctx.obj["lang"] = select_language(lang)
    ctx.obj["settings_path"] = Path(settings_path) if settings_path else None

    # ── Logging setup (once, at process start) ──────────────────
    if debug:
        level = "DEBUG"
    elif verbose:
        level = "INFO"
    elif quiet:
        level = "ERROR"
    else:
        level = os.environ.get("PROVISION_LOG_LEVEL", "WARNING")

    setup_logging(
        level=level,
        log_file=os.environ.get("PROVISION_LOG_FILE"),
        log_file_level=os.environ.get("PROVISION_LOG_FILE_LEVEL"),
    )


# ── Shared helpers ──────────────────────────────────────────────


def _tri_state(ctx: click.Context, param: click.Parameter, value: str | None) -> bool | None:
    from provisioner.core.config.loader import parse_tri_state

    try:
        return parse_tri_state(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _cpu_list(ctx: click.Context, param: click.Parameter, value: str | None) -> list[int] | None:
    from provisioner.core.config.units import parse_cpu_list

    if value is None:
        return None
    try:
        return parse_cpu_list(value) or None
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


def _size(ctx: click.Context, param: click.Parameter, value: str | None) -> int | None:
    from provisioner.core.config.units import parse_size

    if value is None:
        return None
    try:
        return parse_size(value)
    except ValueError as e:
        raise click.BadParameter(str(e)) from e


_TARGET_OPTIONS = [
    click.option("--install-dir", envvar="INSTALL_DIR", type=click.Path(path_type=Path),
                 help="Binary directory [default: /usr/local/bin]."),
    click.option("--data-dir", envvar="DATA_DIR", type=click.Path(path_type=Path),
                 help="Data directory [default: /var/lib/mikudb]."),
    click.option("--config-dir", envvar="CONFIG_DIR", type=click.Path(path_type=Path),
                 help="Config directory [default: /etc/mikudb]."),
    click.option("--service-name", envvar="SERVICE_NAME", help="Service name [default: mikudb]."),
    click.option("--service-user", envvar="SERVICE_USER", help="Service account [default: mikudb]."),
    click.option("--unit-dir", envvar="PROVISION_UNIT_DIR", type=click.Path(path_type=Path),
                 default=None, help="systemd unit directory [default: /etc/systemd/system]."),
    click.option("--mock", is_flag=True, help="Use mock adapter (no real host commands)."),
]

_FEATURE_OPTIONS = [
    click.option("--bind", "bind_address", envvar="MIKUDB_BIND", help="Listen address."),
    click.option("--port", envvar="MIKUDB_PORT", type=int, help="Listen port [default: 3939]."),
    click.option("--cache-size", envvar="CACHE_SIZE", callback=_size,
                 help="Storage cache size, e.g. 4GB [default: 25% of RAM]."),
    click.option("--huge-pages", envvar="ENABLE_HUGEPAGES", callback=_tri_state,
                 metavar="auto|true|false", help="Huge pages [default: auto]."),
    click.option("--numa", envvar="ENABLE_NUMA", callback=_tri_state,
                 metavar="auto|true|false", help="NUMA binding [default: auto]."),
    click.option("--async-io", envvar="ENABLE_ASYNC_IO", callback=_tri_state,
                 metavar="auto|true|false", help="io_uring [default: auto]."),
    click.option("--tcp-tuning", envvar="TCP_TUNING", callback=_tri_state,
                 metavar="auto|true|false", help="TCP sysctl tuning [default: auto]."),
    click.option("--numa-node", envvar="NUMA_NODE", type=click.IntRange(min=0),
                 help="NUMA node to bind [default: 0]."),
    click.option("--cpu-affinity", envvar="CPU_AFFINITY", callback=_cpu_list,
                 metavar="LIST", help="Pin to cores, e.g. 0-3,8 [default: auto, no pinning]."),
]


def _apply(options: list):
    def decorator(f):
        for option in reversed(options):
            f = option(f)
        return f
    return decorator


def _fail(message: str, code: int = 1) -> None:
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(code)


def _settings(ctx: click.Context):
    from provisioner.core.config.loader import ConfigError, load_settings

    if "settings" not in ctx.obj:
        try:
            ctx.obj["settings"] = load_settings(ctx.obj.get("settings_path"))
        except ConfigError as e:
            _fail(str(e))
        # The settings file may pick a language unless --lang was given
        if ctx.obj["settings"].lang and not ctx.obj.get("lang_arg"):
            from provisioner.core.services.messages import select_language

            ctx.obj["lang"] = select_language(ctx.obj["settings"].lang)
    return ctx.obj["settings"]


def _target(ctx: click.Context, opts: dict):
    from provisioner.core.config.loader import ConfigError, resolve_target

    try:
        return resolve_target(
            _settings(ctx),
            install_dir=opts.get("install_dir"),
            data_dir=opts.get("data_dir"),
            config_dir=opts.get("config_dir"),
            service_name=opts.get("service_name"),
            service_user=opts.get("service_user"),
            bind_address=opts.get("bind_address"),
            port=opts.get("port"),
            cache_size=opts.get("cache_size"),
        )
    except ConfigError as e:
        _fail(str(e))


def _overrides(ctx: click.Context, opts: dict):
    from provisioner.core.config.loader import ConfigError, resolve_overrides

    try:
        return resolve_overrides(
            _settings(ctx),
            huge_pages=opts.get("huge_pages"),
            numa=opts.get("numa"),
            async_io=opts.get("async_io"),
            tcp_tuning=opts.get("tcp_tuning"),
            numa_node=opts.get("numa_node"),
            cpu_affinity=opts.get("cpu_affinity"),
        )
    except ConfigError as e:
        _fail(str(e))


def _host(opts: dict):
    """Adapter and registrar for this run."""
    from provisioner.adapters import MockAdapter, ShellCommandAdapter
    from provisioner.core.services.registrar import SYSTEMD_UNIT_DIR, default_registrar

    adapter = MockAdapter() if opts.get("mock") else ShellCommandAdapter()
    registrar = default_registrar(adapter, unit_dir=opts.get("unit_dir") or SYSTEMD_UNIT_DIR)
    return adapter, registrar


def _require_mock_sandbox(target, opts: dict) -> None:
    """Refuse a --mock run that would write into system directories.

    The mock adapter only fakes host commands; binaries, config, units
    and drop-ins are still written to (or removed from) the real paths.
    """
    from provisioner.core.models.target import InstallTarget
    from provisioner.core.services.host_tuning import SYSCTL_DIR
    from provisioner.core.services.registrar import SYSTEMD_UNIT_DIR

    if not opts.get("mock"):
        return
    defaults = InstallTarget()
    paths = {
        "--install-dir": (target.install_dir, defaults.install_dir),
        "--data-dir": (target.data_dir, defaults.data_dir),
        "--config-dir": (target.config_dir, defaults.config_dir),
    }
    if not target.windows:
        paths["--unit-dir"] = (opts.get("unit_dir"), SYSTEMD_UNIT_DIR)
        paths["--sysctl-dir"] = (opts.get("sysctl_dir"), SYSCTL_DIR)
    missing = [flag for flag, (value, default) in paths.items()
               if value is None or Path(value) == default]
    if missing:
        _fail(
            "--mock still writes files; point "
            f"{', '.join(missing)} away from the system defaults"
        )


def _echo_state(existing, lang: str) -> None:
    from provisioner.core.services.messages import get_text

    click.secho(f"\n⚠️  {get_text('existing_install', lang)}", fg="yellow", bold=True)
    click.echo(f"   {get_text('exist_service', lang)} {existing.service.value}")
    click.echo(f"   {get_text('exist_binary', lang)} {existing.binary.value}")
    click.echo(f"   {get_text('exist_config', lang)} {existing.config.value}")
    if existing.binary_version:
        click.echo(f"   {get_text('exist_version', lang)} {existing.binary_version}")
    click.echo()


def _confirmer(ctx: click.Context, assume_yes: bool, prompt_key: str, as_json: bool):
    from provisioner.core.services.messages import get_text

    lang = ctx.obj["lang"]

    def confirm(existing) -> bool:
        if assume_yes:
            return True
        if not as_json:
            _echo_state(existing, lang)
        try:
            return click.confirm(get_text(prompt_key, lang), default=False, err=as_json)
        except click.Abort:
            return False

    return confirm


def _echo_warnings(warnings: list[str], lang: str) -> None:
    from provisioner.core.services.messages import get_text

    if warnings:
        click.echo()
        click.secho(f"⚠️  {get_text('warnings', lang)}", fg="yellow")
        for warn in warnings:
            click.echo(f"   • {warn}")


def _finish(result, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
    sys.exit(result.exit_code)


# ── install ─────────────────────────────────────────────────────


@cli.command()
@_apply(_TARGET_OPTIONS)
@_apply(_FEATURE_OPTIONS)
@click.option("--artifact-dir", envvar="ARTIFACT_DIR", type=click.Path(path_type=Path),
              default=None, help="Directory holding built binaries [default: ./target/release].")
@click.option("--skip-service", envvar="SKIP_SERVICE", is_flag=True,
              help="Install files only, do not register the service.")
@click.option("--uninstall", envvar="UNINSTALL", is_flag=True,
              help="Run the uninstall flow instead.")
@click.option("--yes", "-y", "assume_yes", envvar="PROVISION_ASSUME_YES", is_flag=True,
              help="Answer yes to the overwrite prompt.")
@click.option("--strict-verify", is_flag=True,
              help="Fail if the service is not running after registration.")
@click.option("--no-install-helpers", is_flag=True,
              help="Never install detection helpers (numactl).")
@click.option("--sysctl-dir", envvar="PROVISION_SYSCTL_DIR", type=click.Path(path_type=Path),
              default=None, help="sysctl drop-in directory [default: /etc/sysctl.d].")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, **opts) -> None:
    """Install MikuDB and register it as a service."""
    if opts["uninstall"]:
        ctx.invoke(
            uninstall,
            **{k: opts[k] for k in (
                "install_dir", "data_dir", "config_dir", "service_name", "service_user",
                "unit_dir", "mock", "assume_yes", "sysctl_dir", "as_json",
            )},
        )
        return

    from provisioner.core.services.host_tuning import SYSCTL_DIR
    from provisioner.core.services.messages import get_text
    from provisioner.core.use_cases.install import InstallOptions, run_install

    lang = ctx.obj["lang"]
    settings = _settings(ctx)
    target = _target(ctx, opts)
    overrides = _overrides(ctx, opts)
    _require_mock_sandbox(target, opts)
    adapter, registrar = _host(opts)

    install_helpers = not opts["no_install_helpers"]
    if settings.install_helpers is not None and not opts["no_install_helpers"]:
        install_helpers = settings.install_helpers

    options = InstallOptions(
        target=target,
        overrides=overrides,
        artifact_dir=opts["artifact_dir"] or settings.artifact_dir or Path("target/release"),
        skip_service=opts["skip_service"] or bool(settings.skip_service),
        strict_verify=opts["strict_verify"],
        install_helpers=install_helpers,
        sysctl_dir=opts["sysctl_dir"] or SYSCTL_DIR,
    )

    as_json = opts["as_json"]
    quiet = ctx.obj.get("quiet", False)
    if not as_json and not quiet:
        click.secho(f"\n🚀 {get_text('title', lang)} {__version__}", fg="cyan", bold=True)
        click.echo(f"   {get_text('install_dir', lang)} {target.install_dir}")
        click.echo(f"   {get_text('data_dir', lang)} {target.data_dir}")
        click.echo(f"   {get_text('config_dir', lang)} {target.config_dir}")
        if opts["mock"]:
            click.secho("   Mode: mock (no real host commands)", fg="yellow")

    run_kwargs = {}
    if opts["mock"]:
        run_kwargs["privileged"] = lambda: True

    result = run_install(
        options,
        adapter=adapter,
        registrar=registrar,
        confirm=_confirmer(ctx, opts["assume_yes"], "overwrite_prompt", as_json),
        **run_kwargs,
    )

    if not as_json:
        _echo_install(result, target, lang, quiet)
    _finish(result, as_json)


def _echo_install(result, target, lang: str, quiet: bool) -> None:
    from provisioner.core.services.messages import get_text
    from provisioner.core.use_cases.result import EXIT_PREREQUISITE, ProvisionStatus

    if result.status is ProvisionStatus.CANCELLED:
        click.secho(f"⏹  {get_text('cancelled', lang)}", fg="yellow")
        return

    _echo_warnings(result.warnings, lang)

    if result.status is ProvisionStatus.FAILED:
        key = "prerequisite_failed" if result.exit_code == EXIT_PREREQUISITE else "install_failed"
        click.secho(f"\n❌ {get_text(key, lang)} {result.error}", fg="red", bold=True, err=True)
        return

    click.echo()
    click.secho(f"✅ {get_text('install_complete', lang)}", fg="green", bold=True)
    if quiet:
        return
    if result.config_path:
        click.echo(f"   {get_text('config_written', lang)} {result.config_path}")
    if result.flags:
        enabled = [k for k, v in result.flags.summary().items() if v not in (False, None, ())]
        click.echo(f"   {get_text('features', lang)} {', '.join(enabled) or '-'}")
    if result.verified:
        click.secho(f"   {get_text('service_running', lang)}", fg="green")
    elif result.verified is False:
        click.secho(
            f"   {get_text('service_not_verified', lang)} journalctl -u {target.service_name} -n 50",
            fg="yellow",
        )
    if result.server_version:
        click.echo(f"   {result.server_version}")
    click.echo()
    click.secho(f"   {get_text('connect_to', lang)} mikudb-cli", fg="cyan")
    click.echo(f"   {get_text('username', lang)} {result.config.auth.default_user}")
    click.echo(f"   {get_text('password', lang)} {result.config.auth.default_password}")
    click.secho(f"   {get_text('change_password', lang)}", fg="yellow")
    click.echo()


# ── uninstall ───────────────────────────────────────────────────


@cli.command()
@_apply(_TARGET_OPTIONS)
@click.option("--yes", "-y", "assume_yes", envvar="PROVISION_ASSUME_YES", is_flag=True,
              help="Do not ask for confirmation.")
@click.option("--sysctl-dir", envvar="PROVISION_SYSCTL_DIR", type=click.Path(path_type=Path),
              default=None, help="sysctl drop-in directory [default: /etc/sysctl.d].")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def uninstall(ctx: click.Context, **opts) -> None:
    """Remove MikuDB (the data directory is kept)."""
    from provisioner.core.services.host_tuning import SYSCTL_DIR
    from provisioner.core.services.messages import get_text
    from provisioner.core.use_cases.result import ProvisionStatus
    from provisioner.core.use_cases.uninstall import UninstallOptions, run_uninstall

    lang = ctx.obj["lang"]
    target = _target(ctx, opts)
    _require_mock_sandbox(target, opts)
    adapter, registrar = _host(opts)
    as_json = opts["as_json"]

    run_kwargs = {}
    if opts["mock"]:
        run_kwargs["privileged"] = lambda: True

    result = run_uninstall(
        UninstallOptions(
            target=target,
            assume_yes=opts["assume_yes"],
            sysctl_dir=opts["sysctl_dir"] or SYSCTL_DIR,
        ),
        adapter=adapter,
        registrar=registrar,
        confirm=_confirmer(ctx, False, "uninstall_prompt", as_json),
        **run_kwargs,
    )

    if not as_json:
        if result.status is ProvisionStatus.CANCELLED:
            click.secho(f"⏹  {get_text('uninstall_cancelled', lang)}", fg="yellow")
        elif result.status is ProvisionStatus.FAILED:
            _echo_warnings(result.warnings, lang)
            click.secho(f"\n❌ {get_text('uninstall_failed', lang)} {result.error}",
                        fg="red", bold=True, err=True)
        elif result.existing is not None and result.existing.is_clean:
            click.echo(get_text("no_install", lang))
        else:
            _echo_warnings(result.warnings, lang)
            click.secho(f"\n✅ {get_text('uninstall_success', lang)}", fg="green", bold=True)
            click.echo(f"   {get_text('data_preserved', lang)} {target.data_dir}")
            click.echo(f"   {get_text('to_remove_data', lang)} {target.data_dir}")
            click.echo()
    _finish(result, as_json)


# ── status ──────────────────────────────────────────────────────


@cli.command()
@_apply(_TARGET_OPTIONS)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def status(ctx: click.Context, **opts) -> None:
    """Show what is installed on this host."""
    from provisioner.core.services.install_detect import detect
    from provisioner.core.services.messages import get_text

    lang = ctx.obj["lang"]
    target = _target(ctx, opts)
    adapter, registrar = _host(opts)
    state = detect(target, supervisor=registrar, adapter=adapter)

    if opts["as_json"]:
        data = {"service_name": target.service_name, **state.model_dump(mode="json")}
        data["clean"] = state.is_clean
        data["running"] = state.is_running
        click.echo(json.dumps(data, indent=2))
        return

    if state.is_clean:
        click.echo(get_text("no_install", lang))
        return

    colors = {"absent": "white", "present-stopped": "yellow", "present-running": "green"}
    click.secho(f"\n📋 {target.service_name}", fg="cyan", bold=True)
    for key, component in (("exist_service", state.service), ("exist_binary", state.binary),
                           ("exist_config", state.config)):
        click.echo(f"   {get_text(key, lang)} ", nl=False)
        click.secho(component.value, fg=colors[component.value])
    if state.binary_version:
        click.echo(f"   {get_text('exist_version', lang)} {state.binary_version}")
    if state.is_running:
        click.secho(f"   ⚠️  {get_text('server_running', lang)}", fg="yellow")
    click.echo()


# ── probe ───────────────────────────────────────────────────────


def _probe_and_resolve(ctx: click.Context, opts: dict):
    from provisioner.core.services.features import resolve
    from provisioner.core.services.probe import probe

    adapter, _ = _host(opts)
    caps = probe(adapter, install_helpers=opts.get("install_helpers", False))
    return caps, resolve(caps, _overrides(ctx, opts))


@cli.command("probe")
@_apply(_FEATURE_OPTIONS)
@click.option("--install-helpers", is_flag=True,
              help="Allow installing numactl to read NUMA topology.")
@click.option("--mock", is_flag=True, help="Use mock adapter (no real host commands).")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def probe_cmd(ctx: click.Context, **opts) -> None:
    """Show detected host capabilities and the resulting feature flags."""
    caps, flags = _probe_and_resolve(ctx, opts)

    if opts["as_json"]:
        click.echo(json.dumps({
            "capabilities": caps.model_dump(mode="json"),
            "flags": flags.model_dump(mode="json"),
        }, indent=2))
        return

    click.secho(f"\n🔍 {caps.os_family.value} / {caps.arch.value}", fg="cyan", bold=True)
    if caps.cpu_model:
        click.echo(f"   CPU: {caps.cpu_model} ({caps.cpu_count} cores)")
    else:
        click.echo(f"   CPU: {caps.cpu_count} cores")
    click.echo(f"   Memory: {caps.total_memory // (1024 * 1024)} MB")
    click.echo(f"   NUMA nodes: {caps.numa_nodes}")
    click.echo(f"   Huge pages: {'yes' if caps.huge_pages_available else 'no'}")
    io_uring = {True: "yes", False: "no"}.get(caps.io_uring_supported, "unknown")
    click.echo(f"   io_uring: {io_uring}")
    click.echo()
    click.secho("   Flags:", fg="white", bold=True)
    for key, value in flags.summary().items():
        marker = " (forced)" if key in flags.forced else ""
        click.echo(f"     • {key} = {value}{marker}")
    _echo_warnings([*caps.probe_warnings, *flags.warnings], ctx.obj["lang"])
    click.echo()


# ── config ──────────────────────────────────────────────────────


@cli.group()
def config() -> None:
    """Server configuration commands."""


@config.command("render")
@_apply(_TARGET_OPTIONS)
@_apply(_FEATURE_OPTIONS)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write to a file instead of stdout.")
@click.pass_context
def config_render(ctx: click.Context, **opts) -> None:
    """Render mikudb.toml for this host without installing anything."""
    from provisioner.core.services.config_generate import generate, platform_profile, render_toml

    target = _target(ctx, opts)
    caps, flags = _probe_and_resolve(ctx, opts)
    text = render_toml(
        generate(target, caps, flags), title=platform_profile(caps.os_family).title,
    )

    if opts["output"] is None:
        click.echo(text, nl=False)
        return
    opts["output"].write_text(text, encoding="utf-8")
    click.secho(f"✅ Wrote {opts['output']}", fg="green")


if __name__ == "__main__":
    cli()
