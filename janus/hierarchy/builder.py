"""Hierarchy Builder.

Builds one Hierarchy per (group, split sequence, writing broker) observed in
the source, for groups that ended up with at least one Proposal.  For each
triple:

1. collect the upline participants, keeping the most recent entry per
   (broker, level);
2. allocate a deterministic id ordered by (split sequence, representative
   date, writing broker);
3. link it to one Proposal (within range -> open-ended -> latest start);
4. build version V1 with its participants, StateRules, HierarchySplits and
   SplitDistributions.

Hierarchies are not deduplicated by chain signature across split sequences:
each sequence keeps its own structure so Proposals with disjoint date ranges
never share one.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date
from typing import NamedTuple, Optional

from janus import ids
from janus.classification.schemas import ClassificationResult, Proposal, SplitConfiguration
from janus.hierarchy.assignments import BrokerAssignmentBuilder
from janus.hierarchy.schemas import (
    Hierarchy,
    HierarchyParticipant,
    HierarchyResult,
    HierarchyVersion,
    LinkTier,
)
from janus.hierarchy.state_rules import assert_exclusive, build_state_rules
from janus.ingest.schemas import BrokerRecord, CertificateConfiguration, ExtractionResult, Split, SplitTier
from janus.ingest.signature import chain_signature
from janus.parallel import map_groups

logger = logging.getLogger("janus.hierarchy.builder")


class _Observation(NamedTuple):
    certificate: CertificateConfiguration
    split: Split


def link_proposal(proposals: list[Proposal], on: date) -> tuple[Proposal, LinkTier]:
    """Pick the Proposal a Hierarchy dated *on* belongs to.

    Raises:
        ValueError: when *proposals* is empty.
    """
    if not proposals:
        raise ValueError("cannot link a hierarchy to an empty proposal set")

    def latest(candidates: list[Proposal]) -> Proposal:
        return min(candidates, key=lambda p: (-p.effective_from.toordinal(), p.id))

    bounded = [
        p for p in proposals
        if p.effective_to is not None and p.effective_from <= on <= p.effective_to
    ]
    if bounded:
        return latest(bounded), LinkTier.WITHIN_RANGE

    open_ended = [p for p in proposals if p.effective_to is None and p.effective_from <= on]
    if open_ended:
        return latest(open_ended), LinkTier.OPEN_ENDED

    return latest(proposals), LinkTier.LATEST


class HierarchyBuilder:
    """Builds Hierarchies and links them to Proposals.

    Parameters
    ----------
    brokers:
        Broker master lookup for participant names.
    max_workers:
        Thread workers for per-group construction.
    """

    def __init__(
        self,
        brokers: dict[str, BrokerRecord] | None = None,
        *,
        max_workers: int | None = None,
    ) -> None:
        self.brokers = brokers or {}
        self.max_workers = max_workers
        self.assignment_builder = BrokerAssignmentBuilder()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(
        self, extraction: ExtractionResult, classification: ClassificationResult
    ) -> HierarchyResult:
        proposals_by_group = classification.proposals_by_group()

        certs_by_group: dict[str, list[CertificateConfiguration]] = defaultdict(list)
        for cert in extraction.certificates:
            if cert.group_id in proposals_by_group:
                certs_by_group[cert.group_id].append(cert)

        per_group = map_groups(
            lambda group_id: self.build_group(
                group_id, certs_by_group[group_id], proposals_by_group[group_id]
            ),
            sorted(certs_by_group),
            self.max_workers,
        )

        result = HierarchyResult()
        for hierarchies in per_group:
            result.hierarchies.extend(hierarchies)

        assert_exclusive(
            [rule for h in result.hierarchies for rule in h.version.state_rules]
        )

        result.split_configurations = self._link_split_configurations(
            classification.proposals, result
        )
        result.broker_assignments = self.assignment_builder.build(
            extraction.records_by_certificate
        )

        logger.info(
            "Built %d hierarchies for %d groups (%d broker assignments)",
            len(result.hierarchies),
            len(certs_by_group),
            len(result.broker_assignments),
        )
        return result

    def build_group(
        self,
        group_id: str,
        certificates: list[CertificateConfiguration],
        proposals: list[Proposal],
    ) -> list[Hierarchy]:
        """Build every Hierarchy of one group."""
        triples: dict[tuple[int, str], list[_Observation]] = defaultdict(list)
        for cert in certificates:
            for split in cert.splits:
                triples[(split.sequence, split.writing_broker_id)].append(_Observation(cert, split))

        ordered = sorted(
            triples.items(),
            key=lambda item: (
                item[0][0],
                min(o.certificate.effective_date for o in item[1]),
                item[0][1],
            ),
        )

        hierarchies: list[Hierarchy] = []
        for ordinal, ((sequence, writing_broker), observations) in enumerate(ordered, start=1):
            hierarchies.append(
                self._build_hierarchy(
                    ids.hierarchy_id(group_id, ordinal),
                    group_id,
                    sequence,
                    writing_broker,
                    observations,
                    proposals,
                )
            )
        return hierarchies

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_hierarchy(
        self,
        hierarchy_id: str,
        group_id: str,
        sequence: int,
        writing_broker: str,
        observations: list[_Observation],
        proposals: list[Proposal],
    ) -> Hierarchy:
        representative_date = min(o.certificate.effective_date for o in observations)
        proposal, tier = link_proposal(proposals, representative_date)

        version_id = ids.hierarchy_version_id(hierarchy_id)
        tiers = self._participant_tiers(observations)
        participants = [
            HierarchyParticipant(
                id=ids.hierarchy_participant_id(version_id, tier_.broker_id, tier_.level),
                hierarchy_version_id=version_id,
                level=tier_.level,
                broker_id=tier_.broker_id,
                broker_name=self._broker_name(tier_.broker_id),
                split_percent=tier_.split_percent,
                commission_rate=tier_.commission_rate,
                schedule_code=tier_.schedule_code,
            )
            for tier_ in tiers
        ]
        state_rules = build_state_rules(
            version_id,
            participants,
            sorted(
                {(o.certificate.issued_state, o.certificate.product_code) for o in observations},
                key=lambda pair: (pair[0] or "", pair[1]),
            ),
        )

        return Hierarchy(
            id=hierarchy_id,
            group_id=group_id,
            split_sequence=sequence,
            writing_broker_id=writing_broker,
            writing_broker_name=self._broker_name(writing_broker),
            chain_signature=chain_signature(
                (t.level, t.broker_id, t.schedule_code) for t in tiers
            ),
            representative_date=representative_date,
            proposal_id=proposal.id,
            link_tier=tier,
            certificate_count=len({o.certificate.certificate_id for o in observations}),
            version=HierarchyVersion(
                id=version_id,
                hierarchy_id=hierarchy_id,
                effective_from=representative_date,
                participants=participants,
                state_rules=state_rules,
            ),
        )

    @staticmethod
    def _participant_tiers(observations: list[_Observation]) -> list[SplitTier]:
        """Distinct (broker, level) tiers, keeping the most recently observed entry."""
        latest: dict[tuple[str, int], tuple[tuple[date, str], SplitTier]] = {}
        for obs in observations:
            rank = (obs.certificate.effective_date, obs.certificate.certificate_id)
            for tier in obs.split.tiers:
                key = (tier.broker_id, tier.level)
                current = latest.get(key)
                if current is None or rank > current[0]:
                    latest[key] = (rank, tier)
        return sorted((t for _, t in latest.values()), key=lambda t: (t.level, t.broker_id))

    def _broker_name(self, broker_id: str) -> Optional[str]:
        broker = self.brokers.get(broker_id)
        return broker.name if broker is not None and broker.name else None

    @staticmethod
    def _link_split_configurations(
        proposals: list[Proposal], result: HierarchyResult
    ) -> list[SplitConfiguration]:
        index = result.index()
        linked: list[SplitConfiguration] = []
        for proposal in proposals:
            config = proposal.split_configuration
            participants = []
            for participant in config.participants:
                hierarchy = index.get((proposal.group_id, participant.sequence, participant.broker_id))
                participants.append(
                    participant.model_copy(
                        update={"hierarchy_id": hierarchy.id if hierarchy is not None else None}
                    )
                )
            linked.append(config.model_copy(update={"participants": participants}))
        return linked
