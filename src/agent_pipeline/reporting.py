"""Run summary and progress rendering."""

from typing import List

from agent_pipeline.state.models import PhaseStatus, RunResult


def format_duration(seconds: float) -> str:
    """Render a duration as ``45s``, ``2m`` or ``2m 5s``.

    Example:
        >>> format_duration(125)
        '2m 5s'
    """
    if seconds < 60:
        return f"{round(seconds)}s"
    minutes = int(seconds // 60)
    rest = round(seconds - minutes * 60)
    return f"{minutes}m {rest}s" if rest > 0 else f"{minutes}m"


def status_icon(status: PhaseStatus, chat: bool = False) -> str:
    if status == PhaseStatus.COMPLETED:
        return "✅" if chat else "✓"
    if status.is_skip:
        return "⊘"
    if status == PhaseStatus.RETRIED:
        return "↻"
    return "❌" if chat else "✗"


def summary_lines(result: RunResult, chat: bool = False) -> List[str]:
    """One line per record: icon, phase, duration and (terminal only) detail."""
    lines = []
    for record in result.records:
        timing = f" ({format_duration(record.duration_seconds)})" if record.duration_seconds else ""
        icon = status_icon(record.status, chat)
        if chat:
            lines.append(f"{icon} {record.phase}{timing}")
        else:
            detail = f": {record.detail}" if record.detail else ""
            lines.append(f"  [{icon}] {record.phase}{timing}{detail}")
    return lines


def summary_message(result: RunResult) -> str:
    """Chat message closing a run."""
    verdict = "✅ All phases succeeded" if result.phases_succeeded else "⚠️ Some phases failed"
    body = "\n".join(summary_lines(result, chat=True))
    total = format_duration(result.total_seconds or 0)
    return f"*Pipeline complete*: {verdict}\n```\n{body}\n```\n_Total: {total}_"


def progress_bar(phase_count: int, current_index: int, start_phase: int) -> str:
    """Phase progress such as ``✅✅✅⬜⬜⬜`` (``⊘`` for phases never run)."""
    cells = []
    for index in range(1, phase_count + 1):
        if index < start_phase:
            cells.append("⊘")
        elif index <= current_index:
            cells.append("✅")
        else:
            cells.append("⬜")
    return "".join(cells)
