"""Date-Range Normalizer.

Closes gaps and overlaps between a group's Proposals.  Proposals are ordered
by (effective_from, id); every Proposal whose start date has a later distinct
start date in the same group ends the day before that start.  Proposals that
share a start date therefore also share an end date, and the chronologically
last start keeps its original end.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import timedelta

from janus.classification.schemas import ClassificationResult, Proposal
from janus.config import settings
from janus.exceptions import DateRangeIntegrityError

logger = logging.getLogger("janus.classification.normalizer")

_ONE_DAY = timedelta(days=1)


class DateRangeNormalizer:
    """Makes each group's Proposal timeline contiguous."""

    def __init__(self, *, strict: bool | None = None) -> None:
        self.strict = settings.strict_date_ranges if strict is None else strict

    def normalize(self, result: ClassificationResult) -> ClassificationResult:
        """Return a copy of *result* with normalized Proposal date ranges."""
        by_group: dict[str, list[Proposal]] = defaultdict(list)
        for proposal in result.proposals:
            by_group[proposal.group_id].append(proposal)

        normalized: list[Proposal] = []
        adjusted = 0
        for group_id in sorted(by_group):
            group = sorted(by_group[group_id], key=lambda p: (p.effective_from, p.id))
            starts = sorted({p.effective_from for p in group})
            next_start = dict(zip(starts, starts[1:]))
            for proposal in group:
                successor = next_start.get(proposal.effective_from)
                if successor is None:
                    normalized.append(proposal)
                    continue
                new_end = successor - _ONE_DAY
                if new_end != proposal.effective_to:
                    adjusted += 1
                normalized.append(proposal.model_copy(update={"effective_to": new_end}))

        issues = verify_contiguity(normalized)
        for issue in issues:
            logger.warning(issue)
        if issues and self.strict:
            raise DateRangeIntegrityError(issues)

        logger.info(
            "Normalized %d proposals across %d groups (%d end dates adjusted)",
            len(normalized), len(by_group), adjusted,
        )
        return result.model_copy(
            update={"proposals": normalized, "date_range_issues": issues}
        )


def verify_contiguity(proposals: list[Proposal]) -> list[str]:
    """Report gaps and overlaps between chronologically adjacent Proposals.

    Proposals sharing a start date form one slot; every slot but the last
    must share one end date.  Adjacent slots must meet exactly: the earlier
    slot ends the day before the later one starts.
    """
    by_group: dict[str, list[Proposal]] = defaultdict(list)
    for proposal in proposals:
        by_group[proposal.group_id].append(proposal)

    issues: list[str] = []
    for group_id in sorted(by_group):
        group = by_group[group_id]
        if len(group) < 2:
            continue
        slots: dict = defaultdict(list)
        for proposal in group:
            slots[proposal.effective_from].append(proposal)

        ordered = sorted(slots)
        for start in ordered[:-1]:
            ends = {p.effective_to for p in slots[start]}
            if len(ends) > 1:
                issues.append(
                    f"group {group_id}: proposals starting {start} end on different dates"
                )

        for current, following in zip(ordered, ordered[1:]):
            end = max(
                (p.effective_to for p in slots[current]),
                key=lambda d: (d is None, d),
            )
            if end is None or end >= following:
                issues.append(
                    f"group {group_id}: overlap between proposals starting {current} and {following}"
                )
            elif end + _ONE_DAY < following:
                issues.append(
                    f"group {group_id}: gap between {end} and {following}"
                )
    return issues
