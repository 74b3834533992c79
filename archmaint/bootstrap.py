import shutil
import tempfile
from pathlib import Path

from archmaint.constants import SUPPORTED_HELPERS
from archmaint.errors import StepExecutionError
from archmaint.output import info, success
from archmaint.system import check_command, run_command, run_privileged_command


def get_available_aur_helper() -> str | None:
    """Get first available AUR helper, or None."""
    for helper in SUPPORTED_HELPERS:
        if shutil.which(helper):
            return helper
    return None


def bootstrap_aur_helper(helper: str = 'paru', dry_run: bool = False):
    """Build and install an AUR helper from the AUR.

    Supports: paru, yay. Raises StepExecutionError on failure.
    """
    if helper not in SUPPORTED_HELPERS:
        raise StepExecutionError(
            f'Unsupported AUR helper: {helper}. Supported: {", ".join(SUPPORTED_HELPERS)}'
        )

    if shutil.which(helper):
        info(f'{helper} is already installed')
        return

    info(f'{helper} not found, bootstrapping it from the AUR')

    info('Installing base-devel and git...')
    check_command(
        run_privileged_command(
            ['pacman', '-S', '--needed', '--noconfirm', 'base-devel', 'git'],
            dry_run=dry_run,
            capture=False,
        ),
        'Installing base-devel and git',
    )

    with tempfile.TemporaryDirectory() as tmpdir:
        repo_url = f'https://aur.archlinux.org/{helper}.git'
        clone_path = Path(tmpdir) / helper

        info(f'Cloning {repo_url}...')
        check_command(
            run_command(['git', 'clone', '--depth=1', repo_url, str(clone_path)], dry_run=dry_run, capture=False),
            f'Cloning {helper}',
        )

        info(f'Building {helper}...')
        check_command(
            run_command(
                ['makepkg', '-si', '--noconfirm', '--dir', str(clone_path)],
                dry_run=dry_run,
                capture=False,
            ),
            f'Building {helper}',
        )

    if dry_run:
        return

    if not shutil.which(helper):
        raise StepExecutionError(f'{helper} installation verification failed')
    success(f'{helper} installed successfully')
