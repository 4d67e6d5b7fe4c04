"""
somleng-deploy Backup - Stage machine.

A backup run moves through its stages strictly in order. FAILED can be
entered from any working stage and left only by resuming a stage.
"""

from __future__ import annotations

from enum import StrEnum


class BackupStage(StrEnum):
    """Where a backup run currently is."""

    PENDING = "pending"
    COLLECTING = "collecting"
    COMPRESSING = "compressing"
    UPLOADING = "uploading"
    RETENTION_CLEANUP = "retention_cleanup"
    REPORTING = "reporting"
    DONE = "done"
    FAILED = "failed"


# Working stages in execution order
STAGE_ORDER: tuple[BackupStage, ...] = (
    BackupStage.COLLECTING,
    BackupStage.COMPRESSING,
    BackupStage.UPLOADING,
    BackupStage.RETENTION_CLEANUP,
    BackupStage.REPORTING,
)

TRANSITIONS: dict[BackupStage, frozenset[BackupStage]] = {
    BackupStage.PENDING: frozenset({BackupStage.COLLECTING}),
    BackupStage.COLLECTING: frozenset({BackupStage.COMPRESSING, BackupStage.FAILED}),
    BackupStage.COMPRESSING: frozenset({BackupStage.UPLOADING, BackupStage.FAILED}),
    BackupStage.UPLOADING: frozenset({BackupStage.RETENTION_CLEANUP, BackupStage.FAILED}),
    BackupStage.RETENTION_CLEANUP: frozenset({BackupStage.REPORTING, BackupStage.FAILED}),
    BackupStage.REPORTING: frozenset({BackupStage.DONE, BackupStage.FAILED}),
    BackupStage.FAILED: frozenset(STAGE_ORDER),
    BackupStage.DONE: frozenset(),
}


def can_transition(current: BackupStage, target: BackupStage) -> bool:
    return target in TRANSITIONS[current]
