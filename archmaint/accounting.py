import re

UNITS = ['B', 'KiB', 'MiB', 'GiB', 'TiB', 'PiB', 'EiB']

# Binary multipliers for the size suffixes printed by paccache and journalctl
_SUFFIXES = {
    '': 1,
    'b': 1,
    'k': 1024,
    'kb': 1024,
    'kib': 1024,
    'm': 1024**2,
    'mb': 1024**2,
    'mib': 1024**2,
    'g': 1024**3,
    'gb': 1024**3,
    'gib': 1024**3,
    't': 1024**4,
    'tb': 1024**4,
    'tib': 1024**4,
    'p': 1024**5,
    'pib': 1024**5,
    'e': 1024**6,
    'eib': 1024**6,
}

_SIZE_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*([A-Za-z]*)\s*$')


class ByteAccounting:
    """Running total of space freed by independent cleanup steps."""

    def __init__(self):
        self._total = 0

    def add(self, delta: int):
        """Add a measured delta. Non-positive deltas are ignored."""
        if delta > 0:
            self._total += delta

    def total(self) -> int:
        return self._total


def humanize(num_bytes: int) -> str:
    """Format a byte count with the largest fitting binary unit, one decimal."""
    if num_bytes < 0:
        raise ValueError(f'Byte count cannot be negative: {num_bytes}')

    value = float(num_bytes)
    unit = 0
    while value >= 1024 and unit < len(UNITS) - 1:
        value /= 1024
        unit += 1
    return f'{value:.1f} {UNITS[unit]}'


def parse_size(text: str) -> int:
    """Parse a size such as '120.34 MiB', '1.2G' or '0B' into bytes."""
    match = _SIZE_RE.match(text)
    if not match:
        raise ValueError(f'Unrecognized size: {text!r}')
    number, suffix = match.groups()
    multiplier = _SUFFIXES.get(suffix.lower())
    if multiplier is None:
        raise ValueError(f'Unrecognized size unit: {suffix!r}')
    return int(float(number) * multiplier)
