from __future__ import annotations

RICH_ACCENT = "blue"
RICH_ACCENT_BOLD = f"bold {RICH_ACCENT}"
RICH_BORDER_STYLE = RICH_ACCENT

RICH_STATUS_COLORS: dict[str, str] = {
    "passed": "green",
    "ok": "green",
    "failed": "red",
    "timed_out": "red",
    "skipped": "dim",
    "not_run": "dim",
    "running": "yellow",
    "exited": "cyan",
    "killed": "magenta",
}

PRESENTER_TEMPLATES: dict[str, str] = {
    "info": "[blue]ℹ[/blue] {message}",
    "warning": "[yellow]⚠ {message}[/yellow]",
    "error": "[red]✖ {message}[/red]",
    "success": "[green]✔ {message}[/green]",
}


def status_text(status: str) -> str:
    color = RICH_STATUS_COLORS.get(status)
    if not color:
        return status
    return f"[{color}]{status}[/{color}]"


def presenter_message(level: str, message: str) -> str:
    template = PRESENTER_TEMPLATES.get(level, "{message}")
    return template.format(message=message)
