from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable

from archmaint.accounting import ByteAccounting
from archmaint.constants import EXIT_FAILURE
from archmaint.errors import ExternalQueryError, RunAborted, StepExecutionError
from archmaint.output import header, warning


class Severity(Enum):
    FATAL = 'fatal'
    WARN = 'warn'


class StepState(Enum):
    PENDING = 'pending'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    WARN_FAILED = 'warn_failed'
    FATAL_FAILED = 'fatal_failed'
    ABORTED = 'aborted'


@dataclass(frozen=True)
class StepOutcome:
    """Result of a single step execution."""

    succeeded: bool
    freed_bytes: int | None = None
    error_message: str | None = None
    state: StepState = StepState.SUCCEEDED
    detail: str | None = None

    @classmethod
    def ok(cls, freed_bytes: int | None = None, detail: str | None = None) -> 'StepOutcome':
        return cls(succeeded=True, freed_bytes=freed_bytes, detail=detail)

    @classmethod
    def failed(cls, message: str, detail: str | None = None) -> 'StepOutcome':
        return cls(succeeded=False, error_message=message, state=StepState.WARN_FAILED, detail=detail)


@dataclass(frozen=True)
class Step:
    """A named maintenance action with a failure policy.

    The action returns None, an int (bytes freed) or a StepOutcome.
    """

    name: str
    action: Callable[[], 'StepOutcome | int | None']
    severity: Severity = Severity.FATAL
    exit_code: int = EXIT_FAILURE


@dataclass
class RunReport:
    outcomes: list[tuple[str, StepOutcome]] = field(default_factory=list)
    total_freed_bytes: int = 0
    reboot_required: bool = False
    reboot_performed: bool = False
    aborted_by: str | None = None

    def outcome_for(self, name: str) -> StepOutcome | None:
        for step_name, outcome in self.outcomes:
            if step_name == name:
                return outcome
        return None

    @property
    def warnings(self) -> list[tuple[str, StepOutcome]]:
        return [(n, o) for n, o in self.outcomes if o.state == StepState.WARN_FAILED]

    @property
    def aborted(self) -> bool:
        return self.aborted_by is not None


def _normalize(result) -> StepOutcome:
    if result is None:
        return StepOutcome.ok()
    if isinstance(result, StepOutcome):
        return result
    if isinstance(result, bool):
        # Bare booleans follow the package helpers' success convention
        return StepOutcome.ok() if result else StepOutcome.failed('step reported failure')
    if isinstance(result, int):
        return StepOutcome.ok(freed_bytes=result)
    raise TypeError(f'Unsupported step result: {result!r}')


class StepRunner:
    """Runs steps strictly in declaration order."""

    def __init__(self, accounting: ByteAccounting | None = None):
        self.accounting = accounting or ByteAccounting()
        self.states: dict[str, StepState] = {}

    def run(self, steps: list[Step]) -> RunReport:
        report = RunReport()
        self.states = {step.name: StepState.PENDING for step in steps}

        for index, step in enumerate(steps):
            self.states[step.name] = StepState.RUNNING
            header(step.name)

            cause = None
            try:
                outcome = _normalize(step.action())
            except ExternalQueryError as e:
                cause = e
                outcome = StepOutcome.failed(str(e))
                severity = Severity.FATAL
            except StepExecutionError as e:
                cause = e
                outcome = StepOutcome.failed(str(e))
                severity = e.severity or step.severity
            except Exception as e:
                cause = e
                outcome = StepOutcome.failed(str(e) or type(e).__name__)
                severity = step.severity
            else:
                severity = step.severity

            if outcome.succeeded:
                self._record(report, step, outcome, StepState.SUCCEEDED)
                if outcome.freed_bytes is not None:
                    self.accounting.add(outcome.freed_bytes)
                    report.total_freed_bytes = self.accounting.total()
                continue

            if severity == Severity.WARN:
                self._record(report, step, outcome, StepState.WARN_FAILED)
                warning(f'{step.name} failed: {outcome.error_message}')
                continue

            self._record(report, step, outcome, StepState.FATAL_FAILED)
            for remaining in steps[index + 1:]:
                self._record(
                    report,
                    remaining,
                    StepOutcome(succeeded=False, state=StepState.ABORTED),
                    StepState.ABORTED,
                )
            report.aborted_by = step.name
            raise RunAborted(report, step, step.exit_code, cause)

        return report

    def _record(self, report: RunReport, step: Step, outcome: StepOutcome, state: StepState):
        self.states[step.name] = state
        if outcome.state != state:
            outcome = replace(outcome, state=state)
        report.outcomes.append((step.name, outcome))
