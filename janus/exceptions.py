"""Error taxonomy for the Janus engine.

Only conditions that make a stage's output meaningless raise.  Data-integrity
findings (split totals, unknown brokers, unresolved policies) are reported as
warnings on the stage result instead.
"""

from __future__ import annotations


class JanusError(Exception):
    """Base class for all Janus errors."""


class SnapshotError(JanusError):
    """Raw input is malformed in a way that prevents signature computation."""

    def __init__(self, message: str, *, source: str | None = None, line: int | None = None) -> None:
        self.source = source
        self.line = line
        location = ""
        if source is not None:
            location = f"{source}:{line}: " if line is not None else f"{source}: "
        super().__init__(f"{location}{message}")


class StageError(JanusError):
    """A pipeline stage failed; outputs of earlier stages are left intact."""

    def __init__(self, stage: str, cause: BaseException) -> None:
        self.stage = stage
        self.cause = cause
        super().__init__(f"stage '{stage}' failed: {cause}")


class DateRangeIntegrityError(JanusError):
    """Proposal date ranges within a group are not contiguous."""

    def __init__(self, issues: list[str]) -> None:
        self.issues = issues
        super().__init__("; ".join(issues))


class StateRuleConflictError(JanusError):
    """A hierarchy version mixes a catch-all StateRule with per-state rules."""
