"""Adapters for the external tools the maintenance plans drive."""

import os
import shlex
import shutil
import subprocess
import sys
import typer
from dataclasses import dataclass
from pathlib import Path

from archmaint.errors import ConfirmationUnavailableError, ExternalQueryError, StepExecutionError
from archmaint.output import info


@dataclass(frozen=True)
class CommandResult:
    returncode: int
    stdout: str = ''
    stderr: str = ''

    @property
    def ok(self) -> bool:
        return self.returncode == 0


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def is_root() -> bool:
    return os.geteuid() == 0


def running_kernel_release() -> str:
    return os.uname().release


def run_command(argv: list[str], dry_run: bool = False, capture: bool = True) -> CommandResult:
    """Run a command. With capture=False output goes straight to the terminal."""
    if dry_run:
        info(f'Would run: {shlex.join(argv)}')
        return CommandResult(0)

    try:
        result = subprocess.run(argv, capture_output=capture, text=True)
    except FileNotFoundError as e:
        raise StepExecutionError(f'Command not found: {argv[0]}') from e

    return CommandResult(result.returncode, result.stdout or '', result.stderr or '')


def run_privileged_command(argv: list[str], dry_run: bool = False, capture: bool = True) -> CommandResult:
    """Run a command as root, through sudo unless already root."""
    if not is_root():
        argv = ['sudo'] + argv
    return run_command(argv, dry_run=dry_run, capture=capture)


def check_command(result: CommandResult, what: str) -> CommandResult:
    """Raise StepExecutionError if a command failed."""
    if not result.ok:
        message = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else ''
        detail = f': {message}' if message else ''
        raise StepExecutionError(f'{what} failed (exit {result.returncode}){detail}')
    return result


def query_named_set(selector: str) -> list[str]:
    """Names of installed packages matching a regex selector."""
    try:
        result = subprocess.run(
            ['pacman', '-Qsq', selector],
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ExternalQueryError(f'Cannot run pacman: {e}') from e

    output = result.stdout.strip()
    # pacman -Qs exits 1 without output when nothing matches
    if result.returncode == 1 and not output and not result.stderr.strip():
        return []
    if result.returncode != 0:
        raise ExternalQueryError(
            f'pacman -Qsq {selector} failed (exit {result.returncode}): {result.stderr.strip()}'
        )
    if not output:
        return []
    return output.split('\n')


def measure_directory_size(path: Path) -> int:
    """Apparent size of everything below path, like `du -sb`.

    Symlinks are not followed and unreadable entries are skipped.
    """
    path = Path(path)
    try:
        total = path.lstat().st_size
    except OSError:
        return 0

    if not path.is_dir() or path.is_symlink():
        return total

    stack = [path]
    while stack:
        current = stack.pop()
        try:
            entries = list(os.scandir(current))
        except OSError:
            continue
        for entry in entries:
            try:
                total += entry.stat(follow_symlinks=False).st_size
                if entry.is_dir(follow_symlinks=False):
                    stack.append(Path(entry.path))
            except OSError:
                continue
    return total


def confirmation_dialog(title: str, message: str) -> bool:
    """Ask a yes/no question with a zenity dialog."""
    if not command_exists('zenity'):
        raise ConfirmationUnavailableError('zenity is not installed')
    if not (os.environ.get('DISPLAY') or os.environ.get('WAYLAND_DISPLAY')):
        raise ConfirmationUnavailableError('no graphical display available')

    try:
        result = subprocess.run(
            ['zenity', '--question', f'--title={title}', f'--text={message}', '--width=350'],
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise ConfirmationUnavailableError(f'zenity could not be started: {e}') from e

    # zenity: 0 = yes, 1 = no or closed, anything else = could not show the dialog
    if result.returncode == 0:
        return True
    if result.returncode == 1:
        return False
    raise ConfirmationUnavailableError(f'zenity failed (exit {result.returncode})')


def terminal_confirmation(title: str, message: str) -> bool:
    """Ask a yes/no question on the terminal."""
    if not sys.stdin.isatty():
        raise ConfirmationUnavailableError('stdin is not a terminal')
    info(title)
    try:
        return typer.confirm(message, default=False)
    except typer.Abort as e:
        raise ConfirmationUnavailableError('prompt aborted') from e


def trigger_reboot(dry_run: bool = False):
    """Reboot through systemd."""
    result = run_command(['systemctl', 'reboot'], dry_run=dry_run, capture=False)
    check_command(result, 'systemctl reboot')
