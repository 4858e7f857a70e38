"""Janus classification package — from certificates to Proposals.

- :class:`NonConformanceFilter` — partitions certificates into conformant and exception sets
- :class:`ProposalClassifier` — five-tier cascade producing Proposals and key mappings
- :class:`ProposalConsolidator` — merges granular Proposals sharing a signature
- :class:`DateRangeNormalizer` — makes each group's Proposal timeline contiguous
"""

from janus.classification.classifier import ProposalClassifier
from janus.classification.conformance_filter import NonConformanceFilter
from janus.classification.consolidator import ProposalConsolidator
from janus.classification.normalizer import DateRangeNormalizer, verify_contiguity
from janus.classification.schemas import (
    ClassificationResult,
    ClassificationTier,
    ExceptionReason,
    FilterResult,
    Proposal,
    ProposalKeyMapping,
)

__all__ = [
    "NonConformanceFilter",
    "ProposalClassifier",
    "ProposalConsolidator",
    "DateRangeNormalizer",
    "verify_contiguity",
    "ClassificationResult",
    "ClassificationTier",
    "ExceptionReason",
    "FilterResult",
    "Proposal",
    "ProposalKeyMapping",
]
