"""Proposal Consolidator.

Merges a group's granular Proposals that share a ConfigSignature into one
agreement.  The merged Proposal spans the union of its members' years and
dates, and its product and plan scope is the union of theirs, widened to the
wildcard once a union grows past the configured threshold.

Consolidated ids are allocated per group in (effective_from, signature)
order.  Every certificate key is re-mapped to the consolidated Proposal of
its own signature; a key that would map to two Proposals keeps the one
allocated first.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import NamedTuple

from janus import ids
from janus.classification.factory import ProposalFactory, year_end
from janus.classification.schemas import ClassificationTier, Proposal, ProposalKeyMapping
from janus.config import settings
from janus.ingest.schemas import CertificateConfiguration, YearKey

logger = logging.getLogger("janus.classification.consolidator")


class GranularDraft(NamedTuple):
    """A granular Proposal together with the certificates it covers."""

    proposal: Proposal
    certificates: list[CertificateConfiguration]


class ProposalConsolidator:
    """Collapses granular Proposals with identical split structure."""

    def __init__(
        self,
        factory: ProposalFactory,
        *,
        wildcard: str | None = None,
        threshold: int | None = None,
    ) -> None:
        self.factory = factory
        self.wildcard = wildcard or settings.plan_wildcard
        self.threshold = threshold if threshold is not None else settings.scope_wildcard_threshold

    def consolidate(
        self, group_id: str, drafts: list[GranularDraft]
    ) -> tuple[list[Proposal], list[ProposalKeyMapping]]:
        if not drafts:
            return [], []

        by_signature: dict[str, list[GranularDraft]] = defaultdict(list)
        for draft in drafts:
            by_signature[draft.proposal.config_signature].append(draft)

        ordered = sorted(
            by_signature.items(),
            key=lambda item: (min(d.proposal.effective_from for d in item[1]), item[0]),
        )

        proposals: list[Proposal] = []
        mappings: dict[YearKey, ProposalKeyMapping] = {}
        for ordinal, (signature, members) in enumerate(ordered, start=1):
            certificates = [c for d in members for c in d.certificates]
            year_to = max(d.proposal.year_to or d.proposal.year_from for d in members)
            proposal = self.factory.build(
                proposal_id=ids.consolidated_proposal_id(group_id, ordinal),
                group_id=group_id,
                tier=ClassificationTier.CONSOLIDATED,
                certificates=certificates,
                product_codes=self._scope(c.product_code for c in certificates),
                plan_codes=self._scope(c.plan_code for c in certificates),
                year_from=min(d.proposal.year_from for d in members),
                year_to=year_to,
                effective_from=min(c.effective_date for c in certificates),
                effective_to=year_end(year_to),
                source_proposal_ids=[d.proposal.id for d in members],
            )
            proposals.append(proposal)

            for key in sorted({c.year_key for c in certificates}):
                if key in mappings:
                    logger.debug(
                        "Key %s already mapped to %s; not mapping to %s",
                        key, mappings[key].proposal_id, proposal.id,
                    )
                    continue
                mappings[key] = ProposalKeyMapping(
                    key=key, proposal_id=proposal.id, config_signature=signature
                )

        logger.debug(
            "Group %s: consolidated %d granular proposals into %d",
            group_id, len(drafts), len(proposals),
        )
        return proposals, [mappings[k] for k in sorted(mappings)]

    def _scope(self, codes) -> tuple[str, ...]:
        distinct = sorted(set(codes))
        if self.wildcard in distinct and len(distinct) == 1:
            return (self.wildcard,)
        if len(distinct) > self.threshold:
            return (self.wildcard,)
        return tuple(distinct)
