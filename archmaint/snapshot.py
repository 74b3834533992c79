from dataclasses import dataclass
from typing import Callable

from archmaint.errors import ExternalQueryError


@dataclass(frozen=True)
class NamedSet:
    """A sorted, de-duplicated set of names captured at one point in time."""

    identifier: str
    elements: tuple[str, ...]

    @classmethod
    def of(cls, identifier: str, elements) -> 'NamedSet':
        return cls(identifier=identifier, elements=tuple(sorted(set(elements))))


@dataclass(frozen=True)
class DiffResult:
    added: frozenset[str]
    removed: frozenset[str]

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)


def diff(before: NamedSet, after: NamedSet) -> DiffResult:
    """Compare set membership of two captures. Order is irrelevant."""
    before_set = set(before.elements)
    after_set = set(after.elements)
    return DiffResult(
        added=frozenset(after_set - before_set),
        removed=frozenset(before_set - after_set),
    )


class SnapshotDiffer:
    """Captures named sets through an external query function.

    ``selectors`` maps capture ids to the selector handed to ``query``;
    ids without a mapping are used as the selector directly.
    """

    def __init__(self, query: Callable[[str], list[str]], selectors: dict[str, str] | None = None):
        self.query = query
        self.selectors = selectors or {}

    def capture(self, identifier: str) -> NamedSet:
        selector = self.selectors.get(identifier, identifier)
        try:
            elements = self.query(selector)
        except ExternalQueryError:
            raise
        except (OSError, ValueError) as e:
            raise ExternalQueryError(f'Failed to query {identifier}: {e}') from e
        return NamedSet.of(identifier, elements)

    @staticmethod
    def diff(before: NamedSet, after: NamedSet) -> DiffResult:
        return diff(before, after)
