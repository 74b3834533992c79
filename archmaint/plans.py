"""Maintenance plans: ordered step lists for update, install and cleanup."""

from dataclasses import dataclass, field
from typing import Callable

from archmaint.bootstrap import bootstrap_aur_helper
from archmaint.cleanup import (
    clean_cache_directory,
    clean_flatpak,
    clean_helper_cache,
    clean_pacman_cache,
    clean_tmp,
    remove_old_kernels,
    remove_orphans,
    trim_ssds,
    vacuum_journal,
)
from archmaint.config import get_aur_helper, get_declared_packages, get_wanted_aur_helper
from archmaint.constants import (
    EXIT_AUR,
    EXIT_INSTALL,
    EXIT_PRIVILEGE,
    EXIT_QUERY,
    EXIT_UPGRADE,
    THUMBNAIL_CACHE,
)
from archmaint.errors import ExternalQueryError, StepExecutionError
from archmaint.gate import GateResult, ReconciliationGate
from archmaint.output import added, info, warning
from archmaint.packages import (
    compute_install_list,
    get_all_installed_packages,
    install_packages,
    refresh_databases,
    upgrade_aur,
    upgrade_repositories,
)
from archmaint.runner import RunReport, Severity, Step, StepOutcome, StepState
from archmaint.snapshot import NamedSet, SnapshotDiffer, diff
from archmaint.system import check_command, run_command

KERNELS = 'kernels'

STEP_KERNELS_BEFORE = 'Capture installed kernels'
STEP_UPGRADE_REPOS = 'Upgrade repository packages'
STEP_UPGRADE_AUR = 'Upgrade AUR packages'
STEP_KERNELS_AFTER = 'Capture upgraded kernels'
STEP_REBOOT_PROMPT = 'Reboot prompt'

REBOOT_TITLE = 'Reboot required'
REBOOT_MESSAGE = (
    'System packages were upgraded that usually require a reboot.\n'
    'Do you want to reboot now?'
)


@dataclass
class UpdateContext:
    """Kernel snapshots shared between the update steps."""

    differ: SnapshotDiffer
    before: NamedSet | None = None
    after: NamedSet | None = None


def _require(ok: bool, what: str):
    if not ok:
        raise StepExecutionError(f'{what} failed')


# Update


def build_update_plan(
    config: dict,
    context: UpdateContext,
    aur: bool = True,
    dry_run: bool = False,
) -> list[Step]:
    """Repository + AUR upgrade bracketed by kernel snapshots."""

    def capture_before():
        context.before = context.differ.capture(KERNELS)
        return StepOutcome.ok(detail=', '.join(context.before.elements) or 'none')

    def capture_after():
        context.after = context.differ.capture(KERNELS)
        return StepOutcome.ok(detail=', '.join(context.after.elements) or 'none')

    def upgrade_aur_packages():
        helper = get_aur_helper(config)
        if helper == 'pacman':
            info('No AUR helper available, skipping AUR upgrade')
            return StepOutcome.ok(detail='skipped')
        _require(upgrade_aur(helper, dry_run), f'{helper} -Sua')
        return None

    steps = [
        Step(STEP_KERNELS_BEFORE, capture_before, Severity.FATAL, EXIT_QUERY),
        Step(
            STEP_UPGRADE_REPOS,
            lambda: _require(upgrade_repositories(dry_run), 'pacman -Syu'),
            Severity.FATAL,
            EXIT_UPGRADE,
        ),
    ]
    if aur:
        steps.append(Step(STEP_UPGRADE_AUR, upgrade_aur_packages, Severity.FATAL, EXIT_AUR))
    steps.append(Step(STEP_KERNELS_AFTER, capture_after, Severity.FATAL, EXIT_QUERY))
    return steps


def recapture_after_abort(context: UpdateContext, report: RunReport) -> bool:
    """Take the after-snapshot for a run aborted after the repository upgrade.

    The kernel set may already have changed, so the reboot prompt is still
    offered. Returns False when there is nothing to reconcile.
    """
    if context.before is None or context.after is not None:
        return context.after is not None

    outcome = report.outcome_for(STEP_UPGRADE_REPOS)
    if outcome is None or outcome.state != StepState.SUCCEEDED:
        return False

    try:
        context.after = context.differ.capture(KERNELS)
    except ExternalQueryError as e:
        warning(f'Cannot recheck kernels: {e}')
        report.outcomes.append((STEP_REBOOT_PROMPT, StepOutcome.failed(str(e))))
        return False
    return True


def reconcile_reboot(
    context: UpdateContext,
    report: RunReport,
    gate: ReconciliationGate,
    confirm_fn: Callable[[str], bool],
    reboot_fn: Callable[[], None],
) -> GateResult:
    """Offer a reboot when the kernel set changed and record it in the report."""
    report.reboot_required = diff(context.before, context.after).changed

    def reboot():
        reboot_fn()
        report.reboot_performed = True

    try:
        result = gate.confirm_and_act(context.before, context.after, REBOOT_MESSAGE, confirm_fn, reboot)
    except StepExecutionError as e:
        warning(f'Reboot failed: {e}')
        report.outcomes.append((STEP_REBOOT_PROMPT, StepOutcome.failed(f'reboot failed: {e}')))
        return GateResult.DECLINED

    if result == GateResult.UNAVAILABLE:
        report.outcomes.append(
            (STEP_REBOOT_PROMPT, StepOutcome.failed('confirmation dialog unavailable, reboot manually'))
        )
    return result


# Install


@dataclass
class InstallContext:
    helper: str = 'pacman'
    to_install: list[str] = field(default_factory=list)


def build_install_plan(
    config: dict,
    packages: list[str] | None = None,
    dry_run: bool = False,
) -> list[Step]:
    """Privilege check, AUR helper bootstrap, refresh, then install what is missing."""
    context = InstallContext()
    declared = packages if packages else get_declared_packages(config)

    def check_privileges():
        check_command(run_command(['sudo', '-v'], dry_run=dry_run, capture=False), 'sudo authentication')

    def ensure_helper():
        if config.get('aur_helper') == 'pacman':
            info('AUR helper disabled in config, using pacman')
            context.helper = 'pacman'
            return StepOutcome.ok(detail='pacman')
        helper = get_wanted_aur_helper(config)
        bootstrap_aur_helper(helper, dry_run=dry_run)
        context.helper = helper
        return StepOutcome.ok(detail=helper)

    def select_packages():
        context.to_install = compute_install_list(declared, get_all_installed_packages())
        if not context.to_install:
            info('All packages already installed')
        for pkg in context.to_install:
            added(pkg)
        return StepOutcome.ok(detail=f'{len(context.to_install)} of {len(declared)} to install')

    def install():
        if not context.to_install:
            return StepOutcome.ok(detail='nothing to install')
        _require(install_packages(context.to_install, context.helper, dry_run), f'{context.helper} -S')
        return StepOutcome.ok(detail=', '.join(context.to_install))

    return [
        Step('Check sudo privileges', check_privileges, Severity.FATAL, EXIT_PRIVILEGE),
        Step('Ensure AUR helper', ensure_helper, Severity.FATAL, EXIT_AUR),
        Step(
            'Refresh package databases',
            lambda: _require(refresh_databases(dry_run), 'pacman -Sy'),
            Severity.FATAL,
            EXIT_UPGRADE,
        ),
        Step('Select missing packages', select_packages, Severity.FATAL, EXIT_QUERY),
        Step('Install packages', install, Severity.FATAL, EXIT_INSTALL),
    ]


# Cleanup


def build_cleanup_plan(config: dict, dry_run: bool = False) -> list[Step]:
    """Independent cleanup steps; a failure in one never blocks the others."""
    cleanup = config['cleanup']
    helper = get_aur_helper(config)

    warn = Severity.WARN

    steps = [
        Step('Clean pacman cache', lambda: clean_pacman_cache(cleanup['paccache_keep'], dry_run), warn),
        Step('Remove orphaned packages', lambda: remove_orphans(dry_run), warn),
        Step('Clean AUR helper cache', lambda: clean_helper_cache(helper, dry_run), warn),
        Step('Remove old kernels', lambda: remove_old_kernels(get_all_installed_packages(), dry_run), warn),
        Step('Clean /tmp', lambda: clean_tmp(cleanup['tmp_max_age_days'], dry_run), warn),
        Step('Vacuum journal logs', lambda: vacuum_journal(cleanup['journal_vacuum_time'], dry_run), warn),
        Step(
            'Clean thumbnail cache',
            lambda: clean_cache_directory(THUMBNAIL_CACHE, 'Thumbnail cache', dry_run),
            warn,
        ),
    ]
    if cleanup['flatpak']:
        steps.append(Step('Prune Flatpak runtimes', lambda: clean_flatpak(dry_run), warn))
    if cleanup['fstrim']:
        steps.append(Step('Trim SSDs', lambda: trim_ssds(cleanup['trim_fstypes'], dry_run), warn))
    return steps
