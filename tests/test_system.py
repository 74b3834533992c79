import subprocess

import pytest

from archmaint import system
from archmaint.errors import ConfirmationUnavailableError, ExternalQueryError, StepExecutionError
from archmaint.system import (
    CommandResult,
    check_command,
    confirmation_dialog,
    measure_directory_size,
    query_named_set,
    run_privileged_command,
)


def completed(returncode=0, stdout='', stderr=''):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


def test_query_named_set_splits_lines(monkeypatch):
    calls = []

    def fake_run(argv, **kwargs):
        calls.append(argv)
        return completed(stdout='linux\nlinux-headers\n')

    monkeypatch.setattr(system.subprocess, 'run', fake_run)

    assert query_named_set('^linux(|-.*)$') == ['linux', 'linux-headers']
    assert calls == [['pacman', '-Qsq', '^linux(|-.*)$']]


def test_query_named_set_no_match_is_empty(monkeypatch):
    monkeypatch.setattr(system.subprocess, 'run', lambda argv, **kwargs: completed(returncode=1))

    assert query_named_set('^nothing$') == []


def test_query_named_set_failure_raises(monkeypatch):
    monkeypatch.setattr(
        system.subprocess,
        'run',
        lambda argv, **kwargs: completed(returncode=1, stderr='error: could not lock database'),
    )

    with pytest.raises(ExternalQueryError):
        query_named_set('^linux$')


def test_query_named_set_missing_pacman_raises(monkeypatch):
    def fake_run(argv, **kwargs):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(system.subprocess, 'run', fake_run)

    with pytest.raises(ExternalQueryError):
        query_named_set('^linux$')


def test_privileged_command_uses_sudo(monkeypatch):
    calls = []
    monkeypatch.setattr(system, 'is_root', lambda: False)
    monkeypatch.setattr(system.subprocess, 'run', lambda argv, **kwargs: calls.append(argv) or completed())

    assert run_privileged_command(['pacman', '-Syu']).ok
    assert calls == [['sudo', 'pacman', '-Syu']]


def test_privileged_command_as_root_skips_sudo(monkeypatch):
    calls = []
    monkeypatch.setattr(system, 'is_root', lambda: True)
    monkeypatch.setattr(system.subprocess, 'run', lambda argv, **kwargs: calls.append(argv) or completed())

    run_privileged_command(['pacman', '-Syu'])
    assert calls == [['pacman', '-Syu']]


def test_dry_run_does_not_execute(monkeypatch):
    def fake_run(argv, **kwargs):
        raise AssertionError('should not run')

    monkeypatch.setattr(system.subprocess, 'run', fake_run)

    assert run_privileged_command(['pacman', '-Syu'], dry_run=True).ok


def test_missing_command_raises_step_error(monkeypatch):
    def fake_run(argv, **kwargs):
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(system.subprocess, 'run', fake_run)

    with pytest.raises(StepExecutionError):
        system.run_command(['paccache'])


def test_check_command_includes_last_stderr_line():
    with pytest.raises(StepExecutionError, match='exit 1\\): target not found'):
        check_command(CommandResult(1, stderr='warning\ntarget not found\n'), 'pacman')


def test_measure_directory_size(tmp_path):
    (tmp_path / 'a.bin').write_bytes(b'x' * 100)
    nested = tmp_path / 'nested'
    nested.mkdir()
    (nested / 'b.bin').write_bytes(b'y' * 50)
    (tmp_path / 'link').symlink_to(nested / 'b.bin')

    files_only = 150
    assert measure_directory_size(tmp_path) >= files_only
    assert measure_directory_size(tmp_path / 'a.bin') == 100


def test_measure_missing_directory_is_zero(tmp_path):
    assert measure_directory_size(tmp_path / 'missing') == 0


def test_confirmation_dialog_without_zenity(monkeypatch):
    monkeypatch.setattr(system, 'command_exists', lambda name: False)

    with pytest.raises(ConfirmationUnavailableError):
        confirmation_dialog('Reboot required', 'Reboot now?')


def test_confirmation_dialog_without_display(monkeypatch):
    monkeypatch.setattr(system, 'command_exists', lambda name: True)
    monkeypatch.delenv('DISPLAY', raising=False)
    monkeypatch.delenv('WAYLAND_DISPLAY', raising=False)

    with pytest.raises(ConfirmationUnavailableError):
        confirmation_dialog('Reboot required', 'Reboot now?')


@pytest.mark.parametrize('returncode, expected', [(0, True), (1, False)])
def test_confirmation_dialog_answer(monkeypatch, returncode, expected):
    monkeypatch.setattr(system, 'command_exists', lambda name: True)
    monkeypatch.setenv('DISPLAY', ':0')
    monkeypatch.setattr(system.subprocess, 'run', lambda argv, **kwargs: completed(returncode=returncode))

    assert confirmation_dialog('Reboot required', 'Reboot now?') is expected


def test_confirmation_dialog_error_exit_is_unavailable(monkeypatch):
    monkeypatch.setattr(system, 'command_exists', lambda name: True)
    monkeypatch.setenv('DISPLAY', ':0')
    monkeypatch.setattr(system.subprocess, 'run', lambda argv, **kwargs: completed(returncode=255))

    with pytest.raises(ConfirmationUnavailableError):
        confirmation_dialog('Reboot required', 'Reboot now?')
