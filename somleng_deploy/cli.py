"""
somleng-deploy CLI - Main entry point.

Verb groups:
- stack: deploy / stop / restart / logs / status / update
- backup: backup / restore / list
- ssl: letsencrypt / self-signed / verify / info / renew
- security: harden
- health, firewall, api-test
"""

from __future__ import annotations

import functools
import sys
from pathlib import Path

import click
from loguru import logger

from somleng_deploy import __version__
from somleng_deploy.config.constants import HARDENING_STEPS, SECURITY_REPORT_PATH
from somleng_deploy.config.loader import load_config, resolve_env_file
from somleng_deploy.config.models import DeploymentConfig
from somleng_deploy.core.exceptions import SomlengDeployError
from somleng_deploy.executors.command import CommandRunner
from somleng_deploy.executors.compose import ComposeClient
from somleng_deploy.ui.console import ConsoleUI
from somleng_deploy.utils.logger import setup_logger


def handle_errors(func):
    """Turn domain errors into exit code 1 and Ctrl-C into 130."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SomlengDeployError as e:
            logger.error(f"❌ {e.message}")
            if e.details:
                logger.debug(f"Details: {e.details}")
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("⚠️ Interrupted")
            sys.exit(130)

    return wrapper


def _load_config(ctx: click.Context, require_file: bool = True) -> DeploymentConfig:
    config = load_config(ctx.obj["project_dir"], ctx.obj["env_file"], require_file=require_file)
    # Re-install sinks so this deployment's secrets are scrubbed from every log line
    setup_logger(verbose=ctx.obj["verbose"], quiet=ctx.obj["quiet"], secrets=config.secrets())
    return config


def _runner(ctx: click.Context, config: DeploymentConfig | None = None) -> CommandRunner:
    cwd = config.project_dir if config else ctx.obj["project_dir"]
    return CommandRunner(cwd=cwd, dry_run=ctx.obj["dry_run"])


def _compose(runner: CommandRunner, config: DeploymentConfig) -> ComposeClient:
    return ComposeClient(runner, config.compose_file)


def _stack_manager(ctx: click.Context, config: DeploymentConfig):
    from somleng_deploy.orchestration.deploy import StackManager
    from somleng_deploy.orchestration.services import load_catalog

    runner = _runner(ctx, config)
    return StackManager(
        config, runner, _compose(runner, config), load_catalog(config.service_catalog_file), ctx.obj["ui"]
    )


@click.group()
@click.version_option(version=__version__, prog_name="somleng-deploy")
@click.option(
    "--project-dir", "-C",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    envvar="SOMLENG_PROJECT_DIR",
    help="Directory holding docker-compose.yml and .env",
)
@click.option("--env-file", type=click.Path(dir_okay=False, path_type=Path), default=None, help="Alternate .env file")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug output")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors")
@click.option("--dry-run", is_flag=True, help="Print commands instead of running them")
@click.pass_context
def cli(ctx, project_dir, env_file, verbose, quiet, dry_run):
    """
    somleng-deploy - Deploy and operate a Somleng CPaaS installation.
    """
    ctx.ensure_object(dict)
    ctx.obj["project_dir"] = project_dir.expanduser().resolve()
    ctx.obj["env_file"] = env_file
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["dry_run"] = dry_run
    ctx.obj.setdefault("ui", ConsoleUI())

    setup_logger(verbose=verbose, quiet=quiet)


# =============================================================================
# stack
# =============================================================================

@cli.group()
def stack():
    """Deploy and control the service stack."""


@stack.command()
@click.option("--skip-firewall", is_flag=True, help="Do not touch ufw rules")
@click.option("--no-build", is_flag=True, help="Use pulled images only, skip `compose build`")
@click.pass_context
@handle_errors
def deploy(ctx, skip_firewall, no_build):
    """Deploy the complete stack."""
    from somleng_deploy.orchestration.validator import ensure_env_file

    project_dir = ctx.obj["project_dir"]
    ensure_env_file(project_dir, resolve_env_file(project_dir, ctx.obj["env_file"]))

    config = _load_config(ctx)
    _stack_manager(ctx, config).deploy(apply_firewall=not skip_firewall, build=not no_build)


@stack.command()
@click.pass_context
@handle_errors
def stop(ctx):
    """Stop all services."""
    _stack_manager(ctx, _load_config(ctx)).stop()


@stack.command()
@click.pass_context
@handle_errors
def restart(ctx):
    """Restart all services."""
    _stack_manager(ctx, _load_config(ctx)).restart()


@stack.command()
@click.argument("service", required=False)
@click.option("--no-follow", is_flag=True, help="Print current logs and exit")
@click.pass_context
@handle_errors
def logs(ctx, service, no_follow):
    """Show logs (optionally for one SERVICE)."""
    _stack_manager(ctx, _load_config(ctx)).logs(service, follow=not no_follow)


@stack.command()
@click.pass_context
@handle_errors
def status(ctx):
    """Show service status and access URLs."""
    if not _stack_manager(ctx, _load_config(ctx)).status():
        sys.exit(1)


@stack.command()
@click.pass_context
@handle_errors
def update(ctx):
    """Pull new images and recreate services."""
    _stack_manager(ctx, _load_config(ctx)).update()


# =============================================================================
# backup
# =============================================================================

def _backup_manager(ctx: click.Context):
    from somleng_deploy.backup.manager import BackupManager

    config = _load_config(ctx, require_file=False)
    runner = _runner(ctx, config)
    return BackupManager(config, runner, _compose(runner, config))


@cli.group(name="backup")
def backup_group():
    """Back up, restore and list backups."""


@backup_group.command(name="backup")
@click.pass_context
@handle_errors
def backup_cmd(ctx):
    """Create a new backup."""
    run = _backup_manager(ctx).backup()
    if run is not None and run.report_path is not None:
        ctx.obj["ui"].success(f"✅ {run.name} ({run.report_path})")


@backup_group.command()
@click.argument("archive")
@click.pass_context
@handle_errors
def restore(ctx, archive):
    """Restore from ARCHIVE."""
    _backup_manager(ctx).restore(archive)


@backup_group.command(name="list")
@click.pass_context
@handle_errors
def list_cmd(ctx):
    """List available backups."""
    from somleng_deploy.backup.report import human_size

    manager = _backup_manager(ctx)
    ui: ConsoleUI = ctx.obj["ui"]

    local = manager.list_local()
    if local:
        rows = [
            [a.path.name, human_size(a.size), a.created.isoformat(sep=" ") if a.created else "?"]
            for a in local
        ]
        ui.table(["Archive", "Size", "Created"], rows, title=f"Local backups ({manager.config.backup_dir})")
    else:
        ui.info("No local backups found")

    remote = manager.list_remote()
    if remote is None:
        return
    if remote:
        rows = [[a.name, human_size(a.size), a.last_modified.isoformat(sep=" ")] for a in remote]
        ui.table(["Archive", "Size", "Uploaded"], rows, title=f"S3 backups ({manager.storage.location})")
    else:
        ui.info("No S3 backups found")


# =============================================================================
# ssl
# =============================================================================

def _cert_manager(ctx: click.Context):
    from somleng_deploy.ssl.certificates import CertificateManager

    config = _load_config(ctx)
    runner = _runner(ctx, config)
    return CertificateManager(config, runner, _compose(runner, config))


def _verify(ctx: click.Context, manager) -> None:
    if ctx.obj["dry_run"]:
        return
    info = manager.verify()
    ui: ConsoleUI = ctx.obj["ui"]
    ui.info(f"Subject: {info.subject}")
    ui.info(f"Issuer: {info.issuer}")
    ui.info(f"Expires: {info.not_after.isoformat(sep=' ')}")


@cli.group(name="ssl")
def ssl_group():
    """Manage TLS certificates."""


@ssl_group.command()
@click.pass_context
@handle_errors
def letsencrypt(ctx):
    """Set up Let's Encrypt certificates (production)."""
    manager = _cert_manager(ctx)
    manager.letsencrypt()
    _verify(ctx, manager)


@ssl_group.command(name="self-signed")
@click.pass_context
@handle_errors
def self_signed(ctx):
    """Generate self-signed certificates (testing)."""
    manager = _cert_manager(ctx)
    manager.self_signed()
    _verify(ctx, manager)


@ssl_group.command()
@click.pass_context
@handle_errors
def verify(ctx):
    """Verify existing certificates."""
    _verify(ctx, _cert_manager(ctx))


@ssl_group.command()
@click.pass_context
@handle_errors
def info(ctx):
    """Show certificate information."""
    manager = _cert_manager(ctx)
    ui: ConsoleUI = ctx.obj["ui"]
    ui.info(f"Certificate file: {manager.paths.fullchain}")
    ui.info(f"Private key file: {manager.paths.privkey}")
    ui.info(f"DH parameters file: {manager.paths.dhparam}")
    for line in manager.describe():
        ui.print(f"  {line}")


@ssl_group.command()
@click.pass_context
@handle_errors
def renew(ctx):
    """Renew Let's Encrypt certificates now."""
    _cert_manager(ctx).renew()


# =============================================================================
# security
# =============================================================================

@cli.group()
def security():
    """Harden the host running Somleng."""


@security.command()
@click.option(
    "--skip", multiple=True, type=click.Choice(HARDENING_STEPS), help="Leave a step out (repeatable)"
)
@click.option(
    "--report", "report_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=SECURITY_REPORT_PATH,
    show_default=True,
    help="Where to write the security report",
)
@click.pass_context
@handle_errors
def harden(ctx, skip, report_path):
    """Apply host security hardening (run as root)."""
    from somleng_deploy.security.hardening import HostHardener

    config = _load_config(ctx, require_file=False)
    report = HostHardener(config, _runner(ctx, config), report_path=report_path).harden(skip=skip)

    ui: ConsoleUI = ctx.obj["ui"]
    ui.health_checks(report.checks, title="Somleng CPaaS Security Hardening")
    if report.path is not None:
        ui.info(f"Security report saved to: {report.path}")
    if not report.passed:
        ui.error(f"❌ Hardening failed: {', '.join(report.failed_steps)}")
        sys.exit(1)
    ui.success("✅ Host hardened")
    ui.warning("Test SSH access from a new session before closing this one.")


# =============================================================================
# health / firewall / api-test
# =============================================================================

@cli.command()
@click.pass_context
@handle_errors
def health(ctx):
    """Run the full health-check suite."""
    from somleng_deploy.health.checks import run_health_checks
    from somleng_deploy.orchestration.services import load_catalog

    config = _load_config(ctx)
    runner = _runner(ctx, config)
    report = run_health_checks(
        config, runner, _compose(runner, config), load_catalog(config.service_catalog_file)
    )

    ui: ConsoleUI = ctx.obj["ui"]
    ui.health_checks(report.checks, title="Somleng CPaaS Health Check")
    if not report.passed:
        ui.error(f"❌ Health check failed: {', '.join(report.failed_checks)}")
        sys.exit(1)
    ui.success("✅ All health checks passed!")


@cli.command()
@click.option("--hardened", is_flag=True, help="Reset ufw to deny-by-default and add TURN/monitoring rules")
@click.pass_context
@handle_errors
def firewall(ctx, hardened):
    """Apply ufw firewall rules."""
    from somleng_deploy.security.firewall import configure_firewall

    configure_firewall(_runner(ctx), hardened=hardened)


@cli.command(name="api-test")
@click.pass_context
@handle_errors
def api_test(ctx):
    """Smoke-test the Somleng REST API."""
    from somleng_deploy.api_check import ApiSmokeTester

    config = _load_config(ctx)
    with ApiSmokeTester(config) as tester:
        report = tester.run()

    ui: ConsoleUI = ctx.obj["ui"]
    ui.health_checks(report.checks, title=f"Somleng API ({report.base_url})")
    if not report.passed:
        ui.error(f"❌ API test failed: {', '.join(report.failed_checks)}")
        sys.exit(1)
    ui.success("✅ All API tests passed!")


def main() -> None:
    """Console script entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
