"""Non-Conformance Filter.

Partitions extracted certificates into the conformant pool and the exception
path.  Certificates are removed in this order, each rule seeing only what the
previous rules left:

1. direct-to-consumer certificates (no-group sentinel);
2. certificates of explicitly excluded groups;
3. certificates whose split percents do not sum to the expected total;
4. certificates citing brokers or schedules missing from the master lists;
5. certificates under a natural key (group, date, product, plan) that carries
   more than one ConfigSignature.

Keys are never retried at a coarser grain: a non-conformant key leaves the
pool whole, and its group is flagged non-conformant.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from janus.classification.schemas import (
    ExceptionCertificate,
    ExceptionReason,
    FilterResult,
    NonConformantKey,
)
from janus.config import settings
from janus.ingest.schemas import CertificateConfiguration, NaturalKey

logger = logging.getLogger("janus.classification.conformance_filter")


class NonConformanceFilter:
    """Splits certificates into conformant and exception sets."""

    def __init__(
        self,
        *,
        expected_split_total: int | None = None,
        excluded_group_ids: list[str] | None = None,
    ) -> None:
        total = expected_split_total if expected_split_total is not None else settings.expected_split_total
        self.expected_split_total = Decimal(total)
        self.excluded_group_ids = set(
            excluded_group_ids if excluded_group_ids is not None else settings.excluded_group_ids
        )

    def partition(
        self,
        certificates: list[CertificateConfiguration],
        missing_references: dict[str, list[str]] | None = None,
    ) -> FilterResult:
        """Partition *certificates*.

        *missing_references* maps certificate ids to the broker and schedule
        references the extractor could not find in the master lists.
        """
        missing_references = missing_references or {}
        result = FilterResult()
        flagged: set[str] = set()
        pool: list[CertificateConfiguration] = []

        for cert in certificates:
            if cert.is_direct_to_consumer:
                result.exceptions.append(
                    ExceptionCertificate(certificate=cert, reason=ExceptionReason.NO_GROUP)
                )
            elif cert.group_id in self.excluded_group_ids:
                flagged.add(cert.group_id)
                result.exceptions.append(
                    ExceptionCertificate(
                        certificate=cert,
                        reason=ExceptionReason.FLAGGED_NON_CONFORMANT,
                        detail="group excluded by configuration",
                    )
                )
            elif cert.total_split_percent != self.expected_split_total:
                message = (
                    f"certificate {cert.certificate_id} splits total "
                    f"{cert.total_split_percent}, expected {self.expected_split_total}"
                )
                logger.warning(message)
                result.warnings.append(message)
                result.exceptions.append(
                    ExceptionCertificate(
                        certificate=cert,
                        reason=ExceptionReason.SPLIT_MISMATCH,
                        detail=f"total {cert.total_split_percent}",
                    )
                )
            elif cert.certificate_id in missing_references:
                result.exceptions.append(
                    ExceptionCertificate(
                        certificate=cert,
                        reason=ExceptionReason.MISSING_REFERENCE,
                        detail="missing " + ", ".join(missing_references[cert.certificate_id]),
                    )
                )
            else:
                pool.append(cert)

        by_key: dict[NaturalKey, list[CertificateConfiguration]] = defaultdict(list)
        for cert in pool:
            by_key[cert.key].append(cert)

        non_conformant: set[NaturalKey] = set()
        for key in sorted(by_key):
            members = by_key[key]
            signatures = sorted({c.config_signature for c in members})
            if len(signatures) > 1:
                non_conformant.add(key)
                flagged.add(key.group_id)
                result.non_conformant_keys.append(
                    NonConformantKey(
                        key=key,
                        signatures=signatures,
                        certificate_ids=sorted(c.certificate_id for c in members),
                    )
                )

        for cert in pool:
            if cert.key in non_conformant:
                result.exceptions.append(
                    ExceptionCertificate(
                        certificate=cert,
                        reason=ExceptionReason.FLAGGED_NON_CONFORMANT,
                        detail="key carries multiple configurations",
                    )
                )
            else:
                result.conformant.append(cert)

        result.flagged_groups = sorted(flagged)
        logger.info(
            "Conformance filter: %d conformant, %d exceptions, %d non-conformant keys, %d flagged groups",
            len(result.conformant),
            len(result.exceptions),
            len(result.non_conformant_keys),
            len(result.flagged_groups),
        )
        return result
