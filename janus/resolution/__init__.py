"""Janus resolution package — policies to Proposals, and the exception path.

- :class:`PolicyResolver` — four-tier fallback cascade with provenance tags
- :class:`ExceptionResolver` — lossless PolicyHierarchyAssignments
"""

from janus.resolution.exception_resolver import ExceptionResolver
from janus.resolution.matchers import (
    GroupFallbackMatcher,
    KeyMappingMatcher,
    ProductWildcardMatcher,
    ProposalMatcher,
    ResolutionIndex,
    YearAdjacentMatcher,
)
from janus.resolution.resolver import PolicyResolver
from janus.resolution.schemas import (
    ExceptionResult,
    PolicyAssignment,
    PolicyHierarchyAssignment,
    ProvenanceTag,
    ResolutionResult,
)

__all__ = [
    "PolicyResolver",
    "ExceptionResolver",
    "ProposalMatcher",
    "KeyMappingMatcher",
    "ProductWildcardMatcher",
    "YearAdjacentMatcher",
    "GroupFallbackMatcher",
    "ResolutionIndex",
    "ExceptionResult",
    "PolicyAssignment",
    "PolicyHierarchyAssignment",
    "ProvenanceTag",
    "ResolutionResult",
]
