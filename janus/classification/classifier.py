"""Proposal Classifier — five-tier cascade over the conformant pool.

Each group is classified independently.  Tiers are tried in order, each one
consuming the certificates it can resolve and passing the remainder on:

1. **Simple** — the whole group carries one ConfigSignature: one open-ended
   Proposal with wildcard product/plan scope.
2. **Plan-Differentiated** — within a product that carries several
   signatures, every plan that carries exactly one gets a Proposal for the
   full year range of its certificates.
3. **Year-Differentiated** — within a (product, plan) that carries several
   signatures, every year that carries exactly one gets a Proposal.
4. **Granular** — one Proposal per remaining (year, product, plan) key, split
   further by signature when the key still carries more than one.
5. **Consolidated** — granular Proposals are merged per signature by
   :class:`~janus.classification.consolidator.ProposalConsolidator`.

Within a group, ordinals follow tier order and then natural-key order, so
Proposal ids are stable across runs.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import NamedTuple

from janus import ids
from janus.classification.consolidator import GranularDraft, ProposalConsolidator
from janus.classification.factory import ProposalFactory, year_end
from janus.classification.schemas import (
    ClassificationResult,
    ClassificationTier,
    Proposal,
    ProposalKeyMapping,
    ProposalProduct,
)
from janus.config import settings
from janus.ingest.schemas import BrokerRecord, CertificateConfiguration, YearKey
from janus.parallel import map_groups

logger = logging.getLogger("janus.classification.classifier")


class _GroupOutput(NamedTuple):
    proposals: list[Proposal]
    key_mappings: list[ProposalKeyMapping]
    tiers: Counter


class ProposalClassifier:
    """Produces the minimal deterministic set of Proposals per group.

    Parameters
    ----------
    brokers:
        Broker master lookup used to name lead brokers and split participants.
    scope_wildcard_threshold:
        Consolidated scopes with more entries than this become wildcard.
    max_workers:
        Thread workers for per-group classification.
    """

    def __init__(
        self,
        brokers: dict[str, BrokerRecord] | None = None,
        *,
        plan_wildcard: str | None = None,
        scope_wildcard_threshold: int | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.wildcard = plan_wildcard or settings.plan_wildcard
        self.factory = ProposalFactory(brokers)
        self.consolidator = ProposalConsolidator(
            self.factory,
            wildcard=self.wildcard,
            threshold=scope_wildcard_threshold,
        )
        self.max_workers = max_workers

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def classify(self, certificates: list[CertificateConfiguration]) -> ClassificationResult:
        """Classify the conformant pool into Proposals and key mappings."""
        by_group: dict[str, list[CertificateConfiguration]] = defaultdict(list)
        for cert in certificates:
            by_group[cert.group_id].append(cert)

        outputs = map_groups(
            lambda item: self.classify_group(*item),
            [(group_id, by_group[group_id]) for group_id in sorted(by_group)],
            self.max_workers,
        )

        result = ClassificationResult()
        tiers: Counter = Counter()
        for output in outputs:
            result.proposals.extend(output.proposals)
            result.key_mappings.extend(output.key_mappings)
            tiers.update(output.tiers)
        result.tier_counts = {tier.value: tiers.get(tier.value, 0) for tier in ClassificationTier}
        result.products = self._products(result.proposals)

        expected = settings.expected_split_total
        for proposal in result.proposals:
            total = proposal.split_configuration.total_split_percent
            if total != expected:
                message = f"proposal {proposal.id} split configuration totals {total}, expected {expected}"
                logger.warning(message)
                result.warnings.append(message)

        logger.info(
            "Classified %d groups into %d proposals (%s)",
            len(outputs),
            len(result.proposals),
            ", ".join(f"{k}={v}" for k, v in result.tier_counts.items() if v),
        )
        return result

    def classify_group(
        self, group_id: str, certificates: list[CertificateConfiguration]
    ) -> _GroupOutput:
        """Run the cascade for a single group."""
        certificates = sorted(certificates, key=lambda c: (c.year_key, c.certificate_id))
        proposals: list[Proposal] = []
        mappings: list[ProposalKeyMapping] = []
        tiers: Counter = Counter()

        signatures = {c.config_signature for c in certificates}
        if len(signatures) == 1:
            proposal = self._simple(group_id, certificates)
            tiers[proposal.tier.value] += 1
            return _GroupOutput([proposal], self._map_keys(certificates, proposal), tiers)

        remaining = certificates

        # ── Tier 2: plan-differentiated ──────────────────────────────
        remaining = self._plan_differentiated(group_id, remaining, proposals, mappings)

        # ── Tier 3: year-differentiated ──────────────────────────────
        remaining = self._year_differentiated(group_id, remaining, proposals, mappings)

        # ── Tier 4: granular ─────────────────────────────────────────
        drafts = self._granular(group_id, remaining, ordinal=len(proposals))

        # ── Tier 5: consolidation ────────────────────────────────────
        consolidated, consolidated_mappings = self.consolidator.consolidate(group_id, drafts)
        proposals.extend(consolidated)
        mappings.extend(consolidated_mappings)

        for proposal in proposals:
            tiers[proposal.tier.value] += 1
        tiers[ClassificationTier.GRANULAR.value] += len(drafts)
        return _GroupOutput(proposals, mappings, tiers)

    # ------------------------------------------------------------------
    # Tiers
    # ------------------------------------------------------------------

    def _simple(self, group_id: str, certificates: list[CertificateConfiguration]) -> Proposal:
        return self.factory.build(
            proposal_id=ids.proposal_id(group_id, 1),
            group_id=group_id,
            tier=ClassificationTier.SIMPLE,
            certificates=certificates,
            product_codes=(self.wildcard,),
            plan_codes=(self.wildcard,),
            year_from=min(c.year for c in certificates),
            year_to=None,
            effective_from=min(c.effective_date for c in certificates),
            effective_to=None,
        )

    def _plan_differentiated(
        self,
        group_id: str,
        certificates: list[CertificateConfiguration],
        proposals: list[Proposal],
        mappings: list[ProposalKeyMapping],
    ) -> list[CertificateConfiguration]:
        by_product: dict[str, list[CertificateConfiguration]] = defaultdict(list)
        for cert in certificates:
            by_product[cert.product_code].append(cert)

        consumed: set[str] = set()
        for product in sorted(by_product):
            members = by_product[product]
            if len({c.config_signature for c in members}) < 2:
                continue
            by_plan: dict[str, list[CertificateConfiguration]] = defaultdict(list)
            for cert in members:
                by_plan[cert.plan_code].append(cert)
            for plan in sorted(by_plan):
                plan_certs = by_plan[plan]
                if len({c.config_signature for c in plan_certs}) != 1:
                    continue
                proposal = self._scoped(
                    group_id,
                    len(proposals) + 1,
                    ClassificationTier.PLAN_DIFFERENTIATED,
                    plan_certs,
                    product,
                    plan,
                )
                proposals.append(proposal)
                mappings.extend(self._map_keys(plan_certs, proposal))
                consumed.update(c.certificate_id for c in plan_certs)

        return [c for c in certificates if c.certificate_id not in consumed]

    def _year_differentiated(
        self,
        group_id: str,
        certificates: list[CertificateConfiguration],
        proposals: list[Proposal],
        mappings: list[ProposalKeyMapping],
    ) -> list[CertificateConfiguration]:
        by_pair: dict[tuple[str, str], list[CertificateConfiguration]] = defaultdict(list)
        for cert in certificates:
            by_pair[(cert.product_code, cert.plan_code)].append(cert)

        consumed: set[str] = set()
        for product, plan in sorted(by_pair):
            members = by_pair[(product, plan)]
            if len({c.config_signature for c in members}) < 2:
                continue
            by_year: dict[int, list[CertificateConfiguration]] = defaultdict(list)
            for cert in members:
                by_year[cert.year].append(cert)
            for year in sorted(by_year):
                year_certs = by_year[year]
                if len({c.config_signature for c in year_certs}) != 1:
                    continue
                proposal = self._scoped(
                    group_id,
                    len(proposals) + 1,
                    ClassificationTier.YEAR_DIFFERENTIATED,
                    year_certs,
                    product,
                    plan,
                )
                proposals.append(proposal)
                mappings.extend(self._map_keys(year_certs, proposal))
                consumed.update(c.certificate_id for c in year_certs)

        return [c for c in certificates if c.certificate_id not in consumed]

    def _granular(
        self,
        group_id: str,
        certificates: list[CertificateConfiguration],
        ordinal: int,
    ) -> list[GranularDraft]:
        by_key: dict[tuple[YearKey, str], list[CertificateConfiguration]] = defaultdict(list)
        for cert in certificates:
            by_key[(cert.year_key, cert.config_signature)].append(cert)

        drafts: list[GranularDraft] = []
        for key, signature in sorted(by_key):
            members = by_key[(key, signature)]
            ordinal += 1
            proposal = self._scoped(
                group_id,
                ordinal,
                ClassificationTier.GRANULAR,
                members,
                key.product_code,
                key.plan_code,
            )
            drafts.append(GranularDraft(proposal=proposal, certificates=members))
        return drafts

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _scoped(
        self,
        group_id: str,
        ordinal: int,
        tier: ClassificationTier,
        certificates: list[CertificateConfiguration],
        product: str,
        plan: str,
    ) -> Proposal:
        year_to = max(c.year for c in certificates)
        return self.factory.build(
            proposal_id=ids.proposal_id(group_id, ordinal),
            group_id=group_id,
            tier=tier,
            certificates=certificates,
            product_codes=(product,),
            plan_codes=(plan,),
            year_from=min(c.year for c in certificates),
            year_to=year_to,
            effective_from=min(c.effective_date for c in certificates),
            effective_to=year_end(year_to),
        )

    @staticmethod
    def _map_keys(
        certificates: list[CertificateConfiguration], proposal: Proposal
    ) -> list[ProposalKeyMapping]:
        keys = sorted({c.year_key for c in certificates})
        return [
            ProposalKeyMapping(key=key, proposal_id=proposal.id, config_signature=proposal.config_signature)
            for key in keys
        ]

    def _products(self, proposals: list[Proposal]) -> list[ProposalProduct]:
        products: list[ProposalProduct] = []
        for proposal in proposals:
            for code in proposal.product_codes:
                products.append(
                    ProposalProduct(
                        id=ids.proposal_product_id(proposal.id, code),
                        proposal_id=proposal.id,
                        product_code=code,
                    )
                )
        return products
