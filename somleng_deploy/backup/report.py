"""
somleng-deploy Backup - Plaintext backup report.
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from somleng_deploy.backup.sources import ComponentStatus

if TYPE_CHECKING:
    from somleng_deploy.backup.manager import BackupRun

_STATUS_MARKS = {
    ComponentStatus.PRESENT: "ok",
    ComponentStatus.ABSENT: "absent",
    ComponentStatus.ERROR: "ERROR",
}


def human_size(num_bytes: int | None) -> str:
    """`du -h` style size."""
    if num_bytes is None:
        return "N/A"
    size = float(num_bytes)
    for unit in ("B", "K", "M", "G", "T"):
        if size < 1024 or unit == "T":
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}T"


def render_report(run: BackupRun) -> str:
    lines = [
        "Somleng CPaaS Backup Report",
        "===========================",
        f"Backup Name: {run.name}",
        f"Timestamp: {run.started_at.isoformat(sep=' ', timespec='seconds')}",
        f"Backup Size: {human_size(run.archive_size)}",
        "",
        "Components:",
    ]
    for component in run.components:
        mark = _STATUS_MARKS[component.status]
        detail = f" ({component.detail})" if component.detail and component.status != ComponentStatus.PRESENT else ""
        lines.append(f"- [{mark}] {component.category}/{component.name}{detail}")

    local = "removed after upload" if run.local_removed else str(run.archive_path)
    remote = f"s3://{run.storage.bucket}/{run.remote_key}" if run.storage and run.remote_key else "Not configured"
    lines += [
        "",
        "Backup Location:",
        f"- Local: {local}",
        f"- S3: {remote}",
    ]

    if run.local_deleted or run.remote_deleted:
        lines += ["", "Retention:"]
        lines += [f"- deleted local {Path(p).name}" for p in run.local_deleted]
        lines += [f"- deleted remote {key}" for key in run.remote_deleted]

    errors = [c for c in run.components if c.status == ComponentStatus.ERROR]
    status = "SUCCESS" if not errors else f"SUCCESS WITH ERRORS ({len(errors)} component(s) failed)"
    lines += ["", f"Status: {status}", ""]
    return "\n".join(lines)


def write_report(run: BackupRun, directory: Path) -> Path:
    path = directory / f"backup_report_{run.timestamp}.txt"
    path.write_text(render_report(run))
    return path
