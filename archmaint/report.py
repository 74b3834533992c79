from archmaint.accounting import humanize
from archmaint.runner import RunReport, StepState


def render_outcome(name: str, outcome) -> list[str]:
    if outcome.state == StepState.SUCCEEDED:
        lines = [f'✓ {name}']
    elif outcome.state == StepState.WARN_FAILED:
        lines = [f'! {name}: {outcome.error_message or "failed"}']
    elif outcome.state == StepState.FATAL_FAILED:
        lines = [f'✗ {name}: {outcome.error_message or "failed"}']
    else:
        lines = [f'- {name} (aborted)']

    if outcome.detail:
        lines.append(f'    {outcome.detail}')
    return lines


def render(report: RunReport) -> str:
    """Render a run report as terminal text."""
    lines = []
    for name, outcome in report.outcomes:
        lines.extend(render_outcome(name, outcome))

    lines.append('')
    if report.total_freed_bytes > 0:
        lines.append(f'Total space reclaimed: {humanize(report.total_freed_bytes)}')
    else:
        lines.append('No measurable space reclaimed')

    if report.reboot_performed:
        lines.append('Reboot: performed')
    elif report.reboot_required:
        lines.append('Reboot: required, not performed')
    else:
        lines.append('Reboot: not required')

    warnings = report.warnings
    if warnings:
        lines.append(f'Warnings: {len(warnings)}')
        for name, outcome in warnings:
            lines.append(f'  ! {name}: {outcome.error_message or "failed"}')

    if report.aborted:
        lines.append(f'Aborted at: {report.aborted_by}')

    return '\n'.join(lines)
