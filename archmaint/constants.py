from pathlib import Path

CONFIG_DIR = Path.home() / '.config' / 'archmaint'
CONFIG_FILE = CONFIG_DIR / 'config.yaml'
CONFIG_ENV = 'ARCHMAINT_CONFIG'

CACHE_DIR = Path.home() / '.cache'
THUMBNAIL_CACHE = CACHE_DIR / 'thumbnails'
TMP_DIR = Path('/tmp')
MODULES_ROOT = Path('/usr/lib/modules')
SYS_BLOCK = Path('/sys/block')
SYS_CLASS_BLOCK = Path('/sys/class/block')

SUPPORTED_HELPERS = ['paru', 'yay']
KERNEL_SELECTOR = '^linux(|-.*)$'

EXIT_FAILURE = 1
EXIT_CONFIG = 2
EXIT_PRIVILEGE = 3
EXIT_QUERY = 4
EXIT_UPGRADE = 5
EXIT_AUR = 6
EXIT_INSTALL = 7
