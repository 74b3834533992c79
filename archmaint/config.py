import os
import shutil
import yaml
from pathlib import Path

from archmaint.constants import CONFIG_ENV, CONFIG_FILE, KERNEL_SELECTOR, SUPPORTED_HELPERS
from archmaint.errors import ConfigError
from archmaint.output import warning

DEFAULT_PACKAGES = [
    'steam',
    'lutris',
    'discord',
    'r2modman',
    'heroic-games-launcher',
]

DEFAULT_CLEANUP = {
    'paccache_keep': 2,
    'tmp_max_age_days': 1,
    'journal_vacuum_time': '2weeks',
    'flatpak': True,
    'fstrim': True,
    'trim_fstypes': ['ext2', 'ext3', 'ext4', 'btrfs', 'xfs', 'vfat', 'ntfs'],
}

DEFAULT_REBOOT = {
    'prompt': True,
    'dialog': 'zenity',
}

DIALOG_BACKENDS = ['zenity', 'terminal']


def get_config_path(path: Path | None = None) -> Path:
    """Resolve the config path from an explicit path, the environment, or the default."""
    if path is not None:
        return Path(path).expanduser()
    env_path = os.environ.get(CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return CONFIG_FILE


def load_config(path: Path | None = None) -> dict:
    """Load config, merged over the defaults."""
    config_path = get_config_path(path)
    data = {}

    if config_path.exists():
        try:
            with open(config_path) as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f'Cannot read config {config_path}: {e}') from e

    if not isinstance(data, dict):
        raise ConfigError(f'Config {config_path} must be a mapping')

    config = {
        'aur_helper': data.get('aur_helper'),
        'packages': data.get('packages', list(DEFAULT_PACKAGES)),
        'kernel_selector': data.get('kernel_selector', KERNEL_SELECTOR),
        'reboot': {**DEFAULT_REBOOT, **_section(data, 'reboot', config_path)},
        'cleanup': {**DEFAULT_CLEANUP, **_section(data, 'cleanup', config_path)},
    }
    validate_config(config, config_path)
    return config


def _section(data: dict, key: str, config_path: Path) -> dict:
    section = data.get(key) or {}
    if not isinstance(section, dict):
        raise ConfigError(f'"{key}" in {config_path} must be a mapping')
    return section


def validate_config(config: dict, config_path: Path):
    """Raise ConfigError for values the maintenance plans cannot use."""
    helper = config['aur_helper']
    if helper is not None and helper not in SUPPORTED_HELPERS + ['pacman']:
        raise ConfigError(
            f'Unsupported aur_helper "{helper}" in {config_path}. '
            f'Supported: {", ".join(SUPPORTED_HELPERS + ["pacman"])}'
        )

    packages = config['packages']
    if not isinstance(packages, list) or not all(isinstance(p, str) for p in packages):
        raise ConfigError(f'"packages" in {config_path} must be a list of names')

    if config['reboot']['dialog'] not in DIALOG_BACKENDS:
        raise ConfigError(
            f'Unsupported reboot dialog "{config["reboot"]["dialog"]}". '
            f'Supported: {", ".join(DIALOG_BACKENDS)}'
        )

    cleanup = config['cleanup']
    for key in ['paccache_keep', 'tmp_max_age_days']:
        value = cleanup[key]
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ConfigError(f'cleanup.{key} in {config_path} must be a non-negative integer')


def get_declared_packages(config: dict) -> list[str]:
    """Get configured packages, de-duplicated in declaration order."""
    seen = set()
    unique = []
    for p in config['packages']:
        if p not in seen:
            seen.add(p)
            unique.append(p)
    return unique


def get_aur_helper(config: dict) -> str:
    """Get configured or detected AUR helper, 'pacman' if none is usable."""
    helper = config.get('aur_helper')

    if helper == 'pacman':
        return 'pacman'

    if helper:
        if shutil.which(helper):
            return helper
        warning(f'Configured AUR helper "{helper}" not found, falling back')

    for candidate in SUPPORTED_HELPERS:
        if shutil.which(candidate):
            return candidate

    return 'pacman'


def get_wanted_aur_helper(config: dict) -> str:
    """The helper the install plan should bootstrap when none is present."""
    helper = config.get('aur_helper')
    if helper in SUPPORTED_HELPERS:
        return helper

    for candidate in SUPPORTED_HELPERS:
        if shutil.which(candidate):
            return candidate
    return SUPPORTED_HELPERS[0]
