import subprocess

from archmaint.errors import ExternalQueryError
from archmaint.system import CommandResult, run_command, run_privileged_command

# Flags that keep each helper from stopping for PKGBUILD review or prompts
HELPER_FLAGS = {
    'paru': ['--noconfirm', '--skipreview', '--cleanafter'],
    'yay': ['--noconfirm', '--cleanafter', '--answerdiff', 'None', '--answerclean', 'None'],
    'pacman': ['--noconfirm'],
}


def _query(argv: list[str]) -> set[str]:
    """Run a pacman query where a silent exit 1 means 'nothing found'."""
    try:
        result = subprocess.run(argv, capture_output=True, text=True)
    except OSError as e:
        raise ExternalQueryError(f'Cannot run {argv[0]}: {e}') from e

    output = result.stdout.strip()
    if result.returncode == 1 and not output and not result.stderr.strip():
        return set()
    if result.returncode != 0:
        raise ExternalQueryError(
            f'{" ".join(argv)} failed (exit {result.returncode}): {result.stderr.strip()}'
        )
    if not output:
        return set()
    return set(output.split('\n'))


def get_all_installed_packages() -> set[str]:
    """Get all installed packages."""
    return _query(['pacman', '-Qq'])


def get_orphan_packages() -> set[str]:
    """Get orphaned dependencies."""
    return _query(['pacman', '-Qtdq'])


def get_package_owner(path) -> str | None:
    """Name of the package owning path, or None if no package owns it."""
    result = subprocess.run(
        ['pacman', '-Qqo', str(path)],
        capture_output=True,
        text=True,
    )
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def refresh_databases(dry_run: bool = False) -> bool:
    """Refresh the sync databases."""
    result = run_privileged_command(['pacman', '-Sy', '--noconfirm'], dry_run=dry_run, capture=False)
    return result.ok


def upgrade_repositories(dry_run: bool = False) -> bool:
    """Sync, refresh and upgrade official repository packages."""
    result = run_privileged_command(['pacman', '-Syu', '--noconfirm'], dry_run=dry_run, capture=False)
    return result.ok


def upgrade_aur(helper: str, dry_run: bool = False) -> bool:
    """Upgrade AUR packages only."""
    result = run_command([helper, '-Sua'] + HELPER_FLAGS[helper], dry_run=dry_run, capture=False)
    return result.ok


def install_packages(packages: list[str], helper: str, dry_run: bool = False) -> bool:
    """Install packages."""
    if not packages:
        return True
    argv = [helper, '-S', '--needed'] + HELPER_FLAGS[helper] + packages
    if helper == 'pacman':
        result = run_privileged_command(argv, dry_run=dry_run, capture=False)
    else:
        result = run_command(argv, dry_run=dry_run, capture=False)
    return result.ok


def remove_packages(packages: list[str], dry_run: bool = False) -> CommandResult:
    """Remove packages with their unneeded dependencies and config files."""
    return run_privileged_command(
        ['pacman', '-Rns', '--noconfirm'] + sorted(packages),
        dry_run=dry_run,
        capture=False,
    )


def compute_install_list(declared: list[str], installed: set[str]) -> list[str]:
    """Declared packages not yet installed, in declaration order."""
    return [p for p in declared if p not in installed]
