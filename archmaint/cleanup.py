"""Disk cleanup actions.

Each action either returns a StepOutcome describing what it freed or
raises StepExecutionError. Space is measured where the tool does not
report it itself: directory size before and after, clamped by the
accounting to never go negative.
"""

import re
import shutil
from dataclasses import dataclass
from pathlib import Path

from archmaint.accounting import humanize, parse_size
from archmaint.constants import CACHE_DIR, MODULES_ROOT, SYS_BLOCK, SYS_CLASS_BLOCK, TMP_DIR
from archmaint.errors import StepExecutionError
from archmaint.output import info, removed
from archmaint.packages import get_orphan_packages, get_package_owner, remove_packages
from archmaint.runner import StepOutcome
from archmaint.system import (
    check_command,
    command_exists,
    measure_directory_size,
    run_command,
    run_privileged_command,
    running_kernel_release,
)

KERNEL_FLAVOUR_RE = re.compile(r'^linux(-[a-z]+)?$')
KERNEL_ADDON_SUFFIXES = ['-headers', '-docs']

# linux-* packages that are not kernels
NOT_KERNELS = {'linux-api', 'linux-firmware', 'linux-tools', 'linux-atm'}

# Runtime sockets and per-session directories in /tmp
PROTECTED_TMP_ENTRIES = [
    '.X11-unix',
    '.ICE-unix',
    '.XIM-unix',
    '.font-unix',
    'tmux-*',
    'systemd-private-*',
    'ssh-*',
]

# Kernel release suffixes that identify a flavour, e.g. 6.6.30-1-lts
RELEASE_FLAVOURS = ['lts', 'zen', 'hardened', 'rt']

_PACCACHE_SAVED_RE = re.compile(r'disk space saved:\s*([\d.]+\s*[A-Za-z]+)')
_JOURNAL_FREED_RE = re.compile(r'freed\s+([\d.]+\s*[A-Za-z]*)\s+of archived journals')


@dataclass(frozen=True)
class TrimTarget:
    device: str
    mountpoint: str
    fstype: str


# Pacman cache


def clean_pacman_cache(keep: int, dry_run: bool = False) -> StepOutcome:
    """Remove cached package files, keeping the newest versions of each."""
    if not command_exists('paccache'):
        raise StepExecutionError('paccache not found (install pacman-contrib)')

    result = run_privileged_command(['paccache', f'-rk{keep}', '-v'], dry_run=dry_run)
    check_command(result, 'paccache')
    if result.stdout:
        info(result.stdout.strip())

    freed = parse_paccache_output(result.stdout)
    return StepOutcome.ok(freed_bytes=freed, detail=f'{humanize(freed)} saved')


def parse_paccache_output(output: str) -> int:
    """Bytes freed according to paccache's 'disk space saved' summary."""
    match = _PACCACHE_SAVED_RE.search(output)
    if not match:
        return 0
    return parse_size(match.group(1))


# Orphans


def remove_orphans(dry_run: bool = False) -> StepOutcome:
    orphans = get_orphan_packages()
    if not orphans:
        info('No orphaned packages found')
        return StepOutcome.ok(detail='no orphans')

    for pkg in sorted(orphans):
        removed(pkg)
    check_command(remove_packages(sorted(orphans), dry_run=dry_run), 'Removing orphans')
    return StepOutcome.ok(detail=f'{len(orphans)} orphan(s) removed')


# Directory caches


def clear_directory(path: Path):
    """Remove everything inside path, keeping path itself."""
    for entry in path.iterdir():
        if entry.is_dir() and not entry.is_symlink():
            shutil.rmtree(entry)
        else:
            entry.unlink()


def clean_cache_directory(path: Path, label: str, dry_run: bool = False) -> StepOutcome:
    """Empty a per-user cache directory and report the freed space."""
    path = Path(path)
    if not path.is_dir():
        info(f'{label} directory not found: {path}')
        return StepOutcome.ok(detail='nothing to clean')

    if dry_run:
        size = measure_directory_size(path)
        info(f'Would clear {path} ({humanize(size)})')
        return StepOutcome.ok(detail=f'would free up to {humanize(size)}')

    before = measure_directory_size(path)
    try:
        clear_directory(path)
    except OSError as e:
        raise StepExecutionError(f'Cannot clear {path}: {e}') from e
    after = measure_directory_size(path)
    freed = before - after
    info(f'{label} cleared ({humanize(before)} → {humanize(after)})')
    return StepOutcome.ok(freed_bytes=freed, detail=f'{humanize(before)} → {humanize(after)}')


def get_helper_cache_dir(helper: str) -> Path:
    return CACHE_DIR / helper


def clean_helper_cache(helper: str, dry_run: bool = False) -> StepOutcome:
    if helper == 'pacman':
        info('No AUR helper installed, skipping AUR cache')
        return StepOutcome.ok(detail='skipped')
    return clean_cache_directory(get_helper_cache_dir(helper), f'{helper} cache', dry_run)


# Kernels


def kernel_flavour(package: str) -> str | None:
    """Base kernel package an add-on belongs to, e.g. linux-zen-headers -> linux-zen."""
    for suffix in KERNEL_ADDON_SUFFIXES:
        if package.endswith(suffix):
            base = package[: -len(suffix)]
            if KERNEL_FLAVOUR_RE.match(base) and base not in NOT_KERNELS:
                return base
            return None
    if KERNEL_FLAVOUR_RE.match(package) and package not in NOT_KERNELS:
        return package
    return None


def running_flavour(release: str) -> str:
    """Kernel package that provides a running release such as 6.9.1-zen1-1-zen."""
    parts = release.lower().split('-')
    for flavour in RELEASE_FLAVOURS:
        if flavour in parts[1:]:
            return f'linux-{flavour}'
    return 'linux'


def select_stale_kernel_packages(installed: set[str], release: str) -> list[str]:
    """Kernel add-on packages whose kernel flavour is no longer installed.

    Packages of the running kernel's flavour are never selected.
    """
    current = running_flavour(release)
    stale = []
    for package in installed:
        base = kernel_flavour(package)
        if base is None or base == package:
            continue
        if base == current:
            continue
        if base not in installed:
            stale.append(package)
    return sorted(stale)


def select_stale_module_dirs(modules_root: Path, release: str, owner=None) -> list[Path]:
    """Module trees left behind by kernels that are no longer installed."""
    owner = owner or get_package_owner
    if not modules_root.is_dir():
        return []

    stale = []
    for path in sorted(modules_root.iterdir()):
        if not path.is_dir() or path.name == release:
            continue
        # A tree still holding a vmlinuz belongs to an installed kernel
        if (path / 'vmlinuz').exists():
            continue
        if owner(path) is not None:
            continue
        stale.append(path)
    return stale


def remove_old_kernels(installed: set[str], dry_run: bool = False) -> StepOutcome:
    """Remove leftovers of kernels that are not installed, never the running one."""
    release = running_kernel_release()

    packages = select_stale_kernel_packages(installed, release)
    if packages:
        for pkg in packages:
            removed(pkg)
        check_command(remove_packages(packages, dry_run=dry_run), 'Removing stale kernel packages')

    freed = 0
    module_dirs = select_stale_module_dirs(MODULES_ROOT, release)
    for path in module_dirs:
        size = measure_directory_size(path)
        removed(f'{path} ({humanize(size)})')
        result = run_privileged_command(['rm', '-rf', '--', str(path)], dry_run=dry_run)
        check_command(result, f'Removing {path}')
        if not dry_run:
            freed += size - measure_directory_size(path)

    if not packages and not module_dirs:
        info('No old kernels found')
        return StepOutcome.ok(detail='nothing to remove')

    detail = f'{len(packages)} package(s), {len(module_dirs)} module tree(s)'
    return StepOutcome.ok(freed_bytes=freed, detail=detail)


# Temporary files and logs


def _tmp_exclusions(tmp_dir: Path) -> list[str]:
    args = []
    for name in PROTECTED_TMP_ENTRIES:
        args += ['!', '-path', f'{tmp_dir}/{name}', '!', '-path', f'{tmp_dir}/{name}/*']
    return args


def tmp_cleanup_commands(tmp_dir: Path, max_age_days: int) -> list[list[str]]:
    """find invocations that drop old files, then old empty directories.

    Age is judged per file, so a directory that is still written to keeps
    its live contents no matter how old the directory itself is.
    """
    excluded = _tmp_exclusions(tmp_dir)
    age = ['-mtime', f'+{max_age_days}']
    return [
        ['find', str(tmp_dir), '-mindepth', '1', *excluded, '-type', 'f', *age, '-delete'],
        ['find', str(tmp_dir), '-mindepth', '1', '-depth', *excluded, '-type', 'd', '-empty', *age, '-delete'],
    ]


def clean_tmp(max_age_days: int, dry_run: bool = False, tmp_dir: Path = TMP_DIR) -> StepOutcome:
    """Remove files in /tmp not modified for max_age_days, then empty old directories."""
    before = measure_directory_size(tmp_dir)
    for argv in tmp_cleanup_commands(tmp_dir, max_age_days):
        check_command(run_privileged_command(argv, dry_run=dry_run), f'Cleaning {tmp_dir}')
    if dry_run:
        return StepOutcome.ok()
    after = measure_directory_size(tmp_dir)
    return StepOutcome.ok(freed_bytes=before - after, detail=f'{humanize(before)} → {humanize(after)}')


def vacuum_journal(vacuum_time: str, dry_run: bool = False) -> StepOutcome:
    """Drop archived journal files older than vacuum_time."""
    result = run_privileged_command(['journalctl', f'--vacuum-time={vacuum_time}'], dry_run=dry_run)
    check_command(result, 'journalctl --vacuum-time')
    # journalctl reports on stderr
    freed = parse_journal_output(result.stdout + '\n' + result.stderr)
    return StepOutcome.ok(freed_bytes=freed, detail=f'{humanize(freed)} of archived journals')


def parse_journal_output(output: str) -> int:
    return sum(parse_size(size) for size in _JOURNAL_FREED_RE.findall(output))


# Flatpak


def clean_flatpak(dry_run: bool = False) -> StepOutcome:
    if not command_exists('flatpak'):
        info('Flatpak not installed, skipping')
        return StepOutcome.ok(detail='skipped')

    check_command(run_command(['flatpak', 'uninstall', '--unused', '-y'], dry_run=dry_run, capture=False),
                  'flatpak uninstall --unused')
    check_command(run_command(['flatpak', 'repair', '-y'], dry_run=dry_run, capture=False),
                  'flatpak repair')
    return StepOutcome.ok()


# SSD TRIM


def _unescape_findmnt(value: str) -> str:
    # findmnt -r encodes unsafe characters as \xNN
    return re.sub(r'\\x([0-9a-fA-F]{2})', lambda m: chr(int(m.group(1), 16)), value)


def parse_findmnt(output: str) -> list[TrimTarget]:
    targets = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 3:
            continue
        device, mountpoint, fstype = (_unescape_findmnt(p) for p in parts[:3])
        targets.append(TrimTarget(device=device, mountpoint=mountpoint, fstype=fstype))
    return targets


def block_device_name(device: str, sys_class_block: Path = SYS_CLASS_BLOCK) -> str:
    """Disk name for a device path, resolving partitions to their parent disk."""
    # btrfs subvolume sources look like /dev/nvme0n1p2[/@home]
    name = Path(device.split('[', 1)[0]).name
    entry = sys_class_block / name
    if (entry / 'partition').exists():
        return entry.resolve().parent.name
    return name


def is_rotational(disk: str, sys_block: Path = SYS_BLOCK) -> bool | None:
    """Whether a disk is rotational, None if unknown."""
    path = sys_block / disk / 'queue' / 'rotational'
    try:
        return path.read_text().strip() != '0'
    except OSError:
        return None


def find_trim_targets(
    findmnt_output: str,
    fstypes: list[str],
    sys_block: Path = SYS_BLOCK,
    sys_class_block: Path = SYS_CLASS_BLOCK,
) -> list[TrimTarget]:
    """Mounts on non-rotational disks with a supported filesystem, one per device."""
    seen = set()
    targets = []
    for target in parse_findmnt(findmnt_output):
        if target.fstype not in fstypes:
            continue
        source = target.device.split('[', 1)[0]
        if source in seen:
            continue
        disk = block_device_name(target.device, sys_class_block)
        if is_rotational(disk, sys_block) is not False:
            continue
        seen.add(source)
        targets.append(target)
    return targets


def trim_ssds(fstypes: list[str], dry_run: bool = False) -> StepOutcome:
    # Read-only, so it runs on dry runs too
    result = check_command(run_command(['findmnt', '-rn', '-o', 'SOURCE,TARGET,FSTYPE']), 'findmnt')

    targets = find_trim_targets(result.stdout, fstypes)
    if not targets:
        info('No mounted SSD filesystems found')
        return StepOutcome.ok(detail='no SSDs')

    failed = []
    for target in targets:
        info(f'Trimming {target.mountpoint} (device {target.device})...')
        trim = run_privileged_command(['fstrim', '-v', target.mountpoint], dry_run=dry_run)
        if trim.ok:
            if trim.stdout.strip():
                info(trim.stdout.strip())
        else:
            failed.append(target.mountpoint)

    if failed:
        return StepOutcome.failed(f'fstrim failed on {", ".join(failed)}')
    return StepOutcome.ok(detail=f'{len(targets)} filesystem(s) trimmed')
