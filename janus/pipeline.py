"""Migration pipeline — the main orchestrator for a Janus run.

:class:`MigrationPipeline` runs the stages strictly in order, each consuming
only the complete output of the ones before it:

extract → filter → classify → normalize → hierarchies → resolve →
exceptions → audit

:meth:`MigrationPipeline.run` is a pure in-memory transformation.
:meth:`MigrationPipeline.run_and_persist` additionally replaces each stage
group's staging tables as soon as that stage completes, so a failure leaves
everything written by earlier stages in place.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Callable, TypeVar

from pydantic import BaseModel

from janus.classification import DateRangeNormalizer, NonConformanceFilter, ProposalClassifier
from janus.classification.schemas import ClassificationResult, FilterResult
from janus.exceptions import JanusError, StageError
from janus.hierarchy import HierarchyBuilder
from janus.hierarchy.schemas import HierarchyResult
from janus.ingest import SplitConfigExtractor
from janus.ingest.schemas import ExtractionResult, Snapshot
from janus.resolution import ExceptionResolver, PolicyResolver
from janus.resolution.schemas import ExceptionResult, ResolutionResult
from janus.validation import ConformanceAuditor, ConformanceReport, IntegrityReport, IntegrityVerifier

if TYPE_CHECKING:
    from janus.store import SnapshotStore

logger = logging.getLogger("janus.pipeline")

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class MigrationResult(BaseModel):
    """Complete output of one run.

    Attributes
    ----------
    extraction:
        Normalized certificate configurations and policies.
    filtered:
        Conformant pool and exception certificates.
    classification:
        Normalized Proposals, key mappings and products.
    hierarchies:
        Hierarchies, linked split configurations and broker assignments.
    resolution:
        Policy-to-Proposal assignments with provenance.
    exceptions:
        PolicyHierarchyAssignments and their catch-all rule links.
    conformance:
        Per-group ConformanceRecords.
    """

    extraction: ExtractionResult
    filtered: FilterResult
    classification: ClassificationResult
    hierarchies: HierarchyResult
    resolution: ResolutionResult
    exceptions: ExceptionResult
    conformance: ConformanceReport
    stage_seconds: dict[str, float] = {}

    @property
    def warnings(self) -> list[str]:
        return [
            *self.extraction.warnings,
            *self.filtered.warnings,
            *self.classification.warnings,
            *self.classification.date_range_issues,
            *self.hierarchies.warnings,
            *self.resolution.warnings,
            *self.exceptions.warnings,
        ]


# ---------------------------------------------------------------------------
# MigrationPipeline
# ---------------------------------------------------------------------------


class MigrationPipeline:
    """Orchestrates the full resolution engine.

    Usage::

        pipeline = MigrationPipeline()
        result = pipeline.run(snapshot)

    Parameters
    ----------
    max_workers:
        Thread workers for per-group stage work; ``None`` uses settings.
    strict_date_ranges:
        Raise on contiguity violations instead of warning.
    """

    def __init__(
        self,
        *,
        max_workers: int | None = None,
        strict_date_ranges: bool | None = None,
    ) -> None:
        self.max_workers = max_workers
        self.extractor = SplitConfigExtractor()
        self.conformance_filter = NonConformanceFilter()
        self.normalizer = DateRangeNormalizer(strict=strict_date_ranges)
        self.resolver = PolicyResolver()
        self.exception_resolver = ExceptionResolver()
        self.auditor = ConformanceAuditor()
        self.verifier = IntegrityVerifier()
        self._timings: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Stage runner
    # ------------------------------------------------------------------

    def _stage(self, name: str, fn: Callable[[], T]) -> T:
        logger.info("Stage %s: starting", name)
        started = time.perf_counter()
        try:
            output = fn()
        except JanusError:
            logger.exception("Stage %s aborted", name)
            raise
        except Exception as exc:
            logger.exception("Stage %s failed", name)
            raise StageError(name, exc) from exc
        elapsed = time.perf_counter() - started
        self._timings[name] = round(elapsed, 3)
        logger.info("Stage %s: done in %.2fs", name, elapsed)
        return output

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self, snapshot: Snapshot) -> MigrationResult:
        """Run every stage in memory and return the combined result."""
        self._timings = {}
        extraction = self._stage("extract", lambda: self.extractor.extract(snapshot))
        filtered = self._stage(
            "filter",
            lambda: self.conformance_filter.partition(
                extraction.certificates, extraction.missing_references
            ),
        )
        classification = self._classify(extraction, filtered)
        hierarchies = self._build_hierarchies(extraction, classification)
        resolution = self._resolve(extraction, filtered, classification)
        exceptions = self._stage(
            "exceptions",
            lambda: self.exception_resolver.resolve(extraction, filtered, resolution, hierarchies),
        )
        conformance = self._stage(
            "audit", lambda: self.auditor.audit(extraction, filtered, classification)
        )
        return self._result(
            extraction, filtered, classification, hierarchies, resolution, exceptions, conformance
        )

    async def run_and_persist(self, snapshot: Snapshot, store: "SnapshotStore") -> MigrationResult:
        """Run every stage, replacing each stage group's tables as it completes."""
        self._timings = {}
        extraction = self._stage("extract", lambda: self.extractor.extract(snapshot))
        filtered = self._stage(
            "filter",
            lambda: self.conformance_filter.partition(
                extraction.certificates, extraction.missing_references
            ),
        )

        classification = self._classify(extraction, filtered)
        await store.replace_proposals(classification)

        hierarchies = self._build_hierarchies(extraction, classification)
        await store.replace_hierarchies(hierarchies)

        resolution = self._resolve(extraction, filtered, classification)
        await store.replace_policies(extraction, resolution)

        exceptions = self._stage(
            "exceptions",
            lambda: self.exception_resolver.resolve(extraction, filtered, resolution, hierarchies),
        )
        await store.replace_exceptions(exceptions)

        conformance = self._stage(
            "audit", lambda: self.auditor.audit(extraction, filtered, classification)
        )
        await store.replace_conformance(conformance)

        return self._result(
            extraction, filtered, classification, hierarchies, resolution, exceptions, conformance
        )

    def verify(self, result: MigrationResult) -> IntegrityReport:
        """Run the integrity checks over a finished result."""
        return self.verifier.verify(
            result.filtered, result.classification, result.hierarchies, result.exceptions
        )

    # ------------------------------------------------------------------
    # Stage helpers
    # ------------------------------------------------------------------

    def _classify(self, extraction: ExtractionResult, filtered: FilterResult) -> ClassificationResult:
        classifier = ProposalClassifier(extraction.brokers, max_workers=self.max_workers)
        classified = self._stage("classify", lambda: classifier.classify(filtered.conformant))
        return self._stage("normalize", lambda: self.normalizer.normalize(classified))

    def _build_hierarchies(
        self, extraction: ExtractionResult, classification: ClassificationResult
    ) -> HierarchyResult:
        builder = HierarchyBuilder(extraction.brokers, max_workers=self.max_workers)
        return self._stage("hierarchies", lambda: builder.build(extraction, classification))

    def _resolve(
        self,
        extraction: ExtractionResult,
        filtered: FilterResult,
        classification: ClassificationResult,
    ) -> ResolutionResult:
        excluded = [e.certificate.certificate_id for e in filtered.exceptions]
        return self._stage(
            "resolve",
            lambda: self.resolver.resolve(extraction.policies, classification, excluded),
        )

    def _result(self, *stages) -> MigrationResult:
        extraction, filtered, classification, hierarchies, resolution, exceptions, conformance = stages
        return MigrationResult(
            extraction=extraction,
            filtered=filtered,
            classification=classification,
            hierarchies=hierarchies,
            resolution=resolution,
            exceptions=exceptions,
            conformance=conformance,
            stage_seconds=dict(self._timings),
        )
