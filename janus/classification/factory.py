"""Proposal construction shared by the classifier tiers and the consolidator."""

from __future__ import annotations

from datetime import date
from typing import Iterable, Optional, Sequence

from janus import ids
from janus.classification.schemas import (
    ClassificationTier,
    Proposal,
    SplitConfiguration,
    SplitParticipant,
)
from janus.ingest.schemas import BrokerRecord, CertificateConfiguration


def year_end(year: int) -> date:
    return date(year, 12, 31)


class ProposalFactory:
    """Builds Proposals and their SplitConfiguration from member certificates.

    All members of a Proposal share one ConfigSignature, so the structure is
    taken from the representative certificate (lowest certificate id).
    """

    def __init__(self, brokers: dict[str, BrokerRecord] | None = None) -> None:
        self.brokers = brokers or {}

    def broker_name(self, broker_id: str) -> Optional[str]:
        broker = self.brokers.get(broker_id)
        return broker.name if broker is not None and broker.name else None

    def build(
        self,
        *,
        proposal_id: str,
        group_id: str,
        tier: ClassificationTier,
        certificates: Sequence[CertificateConfiguration],
        product_codes: Iterable[str],
        plan_codes: Iterable[str],
        year_from: int,
        year_to: Optional[int],
        effective_from: date,
        effective_to: Optional[date],
        source_proposal_ids: Iterable[str] = (),
    ) -> Proposal:
        representative = min(certificates, key=lambda c: c.certificate_id)
        version_id = ids.split_version_id(proposal_id)
        participants = [
            SplitParticipant(
                id=ids.split_participant_id(version_id, split.sequence),
                sequence=split.sequence,
                broker_id=split.writing_broker_id,
                broker_name=self.broker_name(split.writing_broker_id),
                split_percent=split.split_percent,
            )
            for split in representative.splits
        ]
        lead = representative.splits[0].writing_broker_id
        return Proposal(
            id=proposal_id,
            group_id=group_id,
            tier=tier,
            config_signature=representative.config_signature,
            product_codes=tuple(product_codes),
            plan_codes=tuple(plan_codes),
            year_from=year_from,
            year_to=year_to,
            effective_from=effective_from,
            effective_to=effective_to,
            lead_broker_id=lead,
            lead_broker_name=self.broker_name(lead),
            certificate_count=len(certificates),
            source_proposal_ids=list(source_proposal_ids),
            split_configuration=SplitConfiguration(
                id=version_id, proposal_id=proposal_id, participants=participants
            ),
        )
