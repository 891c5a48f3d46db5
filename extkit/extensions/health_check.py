"""Health report over an orchestrator: failed extensions, install dir, pending triggers, cache."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from extkit.extensions.orchestrator import Orchestrator

Status = Literal["ok", "warning", "error"]


@dataclass
class HealthReport:
    status: Status = "ok"
    issues: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    info: list[str] = field(default_factory=list)

    def add_issue(self, message: str) -> None:
        self.issues.append(message)
        self.status = "error"

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)
        if self.status == "ok":
            self.status = "warning"


def check_health(orchestrator: "Orchestrator", install_dir: Path | None = None) -> HealthReport:
    """Build a report from the orchestrator's status snapshot. Read-only."""
    report = HealthReport()
    status = orchestrator.status()

    if install_dir is not None and not install_dir.is_dir():
        report.add_warning(f"Install directory does not exist: {install_dir}")

    for name, entry in status.items():
        if entry["failed"]:
            report.add_issue(f"{name}: {entry['error']}")
        elif entry["step_errors"]:
            report.add_warning(f"{name}: {'; '.join(entry['step_errors'])}")

    active = sum(1 for e in status.values() if e["active"])
    pending = sum(1 for e in status.values() if e["pending"])
    report.info.append(f"Extensions: {len(status)} registered, {active} active, {pending} pending")

    slowest = sorted(
        (e["activation_duration_ms"], name)
        for name, e in status.items()
        if e["activation_duration_ms"] is not None
    )[-3:]
    if slowest:
        rendered = ", ".join(f"{name} {ms:.1f} ms" for ms, name in reversed(slowest))
        report.info.append(f"Slowest activations: {rendered}")

    stats = orchestrator.cache.stats()
    report.info.append(
        f"Cache: {stats['extension_count']} extensions, {stats['size']} bytes"
    )
    return report


def format_report(report: HealthReport) -> str:
    """Markdown rendering of a HealthReport."""
    lines = ["# Extension Health Check", "", f"Status: {report.status.upper()}", ""]
    for title, items in (("Issues", report.issues), ("Warnings", report.warnings), ("Info", report.info)):
        if not items:
            continue
        lines.append(f"## {title}")
        lines.extend(f"- {item}" for item in items)
        lines.append("")
    return "\n".join(lines)
