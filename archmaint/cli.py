from pathlib import Path

import typer

from archmaint import __version__
from archmaint.config import load_config
from archmaint.constants import EXIT_CONFIG
from archmaint.errors import ConfigError, RunAborted
from archmaint.gate import ReconciliationGate
from archmaint.output import error, header, plain, success, warning
from archmaint.plans import (
    REBOOT_TITLE,
    UpdateContext,
    build_cleanup_plan,
    build_install_plan,
    build_update_plan,
    reconcile_reboot,
    recapture_after_abort,
)
from archmaint.report import render
from archmaint.runner import RunReport, StepRunner
from archmaint.snapshot import SnapshotDiffer
from archmaint.system import confirmation_dialog, query_named_set, terminal_confirmation, trigger_reboot

CONTEXT_SETTINGS = {
    'help_option_names': ['--help', '-h'],
}

update_app = typer.Typer(
    name='archmaint-update',
    help='Upgrade repository and AUR packages, prompting for reboot when kernels changed',
    context_settings=CONTEXT_SETTINGS,
    add_completion=False,
)
install_app = typer.Typer(
    name='archmaint-install',
    help='Install the configured applications through the AUR helper',
    context_settings=CONTEXT_SETTINGS,
    add_completion=False,
)
cleanup_app = typer.Typer(
    name='archmaint-cleanup',
    help='Reclaim disk space from caches, orphans, old kernels and logs',
    context_settings=CONTEXT_SETTINGS,
    add_completion=False,
)


def version_callback(value: bool):
    if value:
        typer.echo(f'archmaint {__version__}')
        raise typer.Exit()


VERSION_OPTION = typer.Option(
    False, '--version', '-v', callback=version_callback, is_eager=True, help='Show version'
)
DRY_RUN_OPTION = typer.Option(False, '--dry-run', '-n', help='Show what would be done')
CONFIG_OPTION = typer.Option(None, '--config', '-c', help='Config file (default: ~/.config/archmaint/config.yaml)')


def load_config_or_exit(path: Path | None) -> dict:
    try:
        return load_config(path)
    except ConfigError as e:
        error(str(e))
        raise typer.Exit(EXIT_CONFIG)


def print_report(report: RunReport):
    header('Summary')
    plain(render(report))


def finish(report: RunReport, dry_run: bool, done: str):
    print_report(report)
    if dry_run:
        warning('Dry run - no changes made')
    elif report.warnings:
        warning(f'{done} with {len(report.warnings)} warning(s)')
    else:
        success(done)


def get_confirm_fn(config: dict):
    if config['reboot']['dialog'] == 'terminal':
        return lambda prompt: terminal_confirmation(REBOOT_TITLE, prompt)
    return lambda prompt: confirmation_dialog(REBOOT_TITLE, prompt)


@update_app.command()
def update(
    dry_run: bool = DRY_RUN_OPTION,
    no_aur: bool = typer.Option(False, '--no-aur', help='Skip the AUR upgrade'),
    no_reboot_prompt: bool = typer.Option(False, '--no-reboot-prompt', help='Never offer a reboot'),
    config_path: Path | None = CONFIG_OPTION,
    version: bool = VERSION_OPTION,
):
    """Upgrade the system and offer a reboot if kernel packages changed."""
    config = load_config_or_exit(config_path)

    differ = SnapshotDiffer(query_named_set, {'kernels': config['kernel_selector']})
    context = UpdateContext(differ=differ)
    gate = ReconciliationGate(enabled=config['reboot']['prompt'] and not no_reboot_prompt and not dry_run)
    confirm_fn = get_confirm_fn(config)

    steps = build_update_plan(config, context, aur=not no_aur, dry_run=dry_run)

    try:
        report = StepRunner().run(steps)
    except RunAborted as e:
        error(str(e))
        if recapture_after_abort(context, e.report):
            warning('Packages were upgraded before the failure, checking kernels anyway')
            reconcile_reboot(context, e.report, gate, confirm_fn, trigger_reboot)
        print_report(e.report)
        raise typer.Exit(e.exit_code)

    reconcile_reboot(context, report, gate, confirm_fn, trigger_reboot)
    finish(report, dry_run, 'Update complete')


@install_app.command()
def install(
    packages: list[str] = typer.Argument(None, help='Package(s) to install (default: configured list)'),
    dry_run: bool = DRY_RUN_OPTION,
    config_path: Path | None = CONFIG_OPTION,
    version: bool = VERSION_OPTION,
):
    """Install applications, bootstrapping the AUR helper if needed."""
    config = load_config_or_exit(config_path)
    steps = build_install_plan(config, packages, dry_run=dry_run)

    try:
        report = StepRunner().run(steps)
    except RunAborted as e:
        error(str(e))
        print_report(e.report)
        raise typer.Exit(e.exit_code)

    finish(report, dry_run, 'Installation complete')


@cleanup_app.command()
def cleanup(
    dry_run: bool = DRY_RUN_OPTION,
    config_path: Path | None = CONFIG_OPTION,
    version: bool = VERSION_OPTION,
):
    """Clean caches, orphans, old kernels, temp files and logs, then trim SSDs."""
    config = load_config_or_exit(config_path)
    steps = build_cleanup_plan(config, dry_run=dry_run)

    try:
        report = StepRunner().run(steps)
    except RunAborted as e:
        error(str(e))
        print_report(e.report)
        raise typer.Exit(e.exit_code)

    finish(report, dry_run, 'Disk cleanup complete')


def update_main():
    update_app()


def install_main():
    install_app()


def cleanup_main():
    cleanup_app()
