"""Exceptions raised while running maintenance steps."""


class MaintenanceError(Exception):
    """Base class for archmaint errors."""


class ConfigError(MaintenanceError):
    """The configuration file is unreadable or invalid."""


class ExternalQueryError(MaintenanceError):
    """Reading external state (e.g. the package database) failed.

    Always fatal: decisions made on top of a failed read are unreliable.
    """


class StepExecutionError(MaintenanceError):
    """A maintenance action failed.

    ``severity`` is normally left unset so the step's own severity applies.
    """

    def __init__(self, message: str, severity=None):
        super().__init__(message)
        self.severity = severity


class ConfirmationUnavailableError(MaintenanceError):
    """The confirmation dialog could not be shown."""


class RunAborted(MaintenanceError):
    """A FATAL step failed; carries the partial report for diagnostics."""

    def __init__(self, report, step, exit_code: int, cause: BaseException | None = None):
        message = report.outcome_for(step.name).error_message or 'step failed'
        super().__init__(f'{step.name}: {message}')
        self.report = report
        self.step = step
        self.exit_code = exit_code
        self.cause = cause
