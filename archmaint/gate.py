from enum import Enum
from typing import Callable

from archmaint.errors import ConfirmationUnavailableError
from archmaint.output import info, warning
from archmaint.snapshot import NamedSet, diff


class GateResult(Enum):
    NOT_NEEDED = 'not_needed'
    DECLINED = 'declined'
    ACTED = 'acted'
    UNAVAILABLE = 'unavailable'


class ReconciliationGate:
    """Offers a follow-up action (e.g. reboot) when a captured set changed."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    def should_prompt(self, before: NamedSet, after: NamedSet) -> bool:
        return self.enabled and diff(before, after).changed

    def confirm_and_act(
        self,
        before: NamedSet,
        after: NamedSet,
        prompt: str,
        confirm_fn: Callable[[str], bool],
        action_fn: Callable[[], None],
    ) -> GateResult:
        """Ask for confirmation and run the action if the set changed.

        Nothing is shown when the sets are equal. A dialog that cannot be
        shown is a warning only; the action is skipped.
        """
        if not self.should_prompt(before, after):
            return GateResult.NOT_NEEDED

        changes = diff(before, after)
        for name in sorted(changes.added):
            info(f'  + {name}')
        for name in sorted(changes.removed):
            info(f'  - {name}')

        try:
            confirmed = confirm_fn(prompt)
        except ConfirmationUnavailableError as e:
            warning(f'Could not ask for confirmation: {e}')
            return GateResult.UNAVAILABLE

        if not confirmed:
            return GateResult.DECLINED

        action_fn()
        return GateResult.ACTED
