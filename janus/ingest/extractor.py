"""Split-Config Extractor.

Turns the raw :class:`CertificateSplitRecord` rows of a snapshot into one
:class:`CertificateConfiguration` per certificate and one :class:`Policy` per
certificate.  Processing stages:

1. Drop inactive rows (record and certificate status filters).
2. Normalize group ids (blank / all-zero -> no-group sentinel) and plan codes
   (null / empty / ``N/A`` / ``NULL`` -> wildcard marker).
3. Assemble each certificate's split sequences with their ordered tiers and
   compute split and certificate signatures.
4. Cross-check broker and schedule references against the master lists and
   record, per certificate, every reference the lists do not contain.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Optional

from janus.config import settings
from janus.exceptions import SnapshotError
from janus.ingest.schemas import (
    BrokerRecord,
    CertificateConfiguration,
    CertificateSplitRecord,
    ExtractionResult,
    Policy,
    Snapshot,
    Split,
    SplitTier,
)
from janus.ingest.signature import config_signature, split_signature

logger = logging.getLogger("janus.ingest.extractor")

# Plan code spellings that mean "no specific plan"
_PLAN_WILDCARD_ALIASES = frozenset({"", "N/A", "NA", "NULL", "NONE"})

# Certificate status -> policy status
_POLICY_STATUS = {
    "A": "Active",
    "ACTIVE": "Active",
    "T": "Terminated",
    "TERMINATED": "Terminated",
    "L": "Lapsed",
    "LAPSED": "Lapsed",
    "P": "Pending",
    "PENDING": "Pending",
}


def normalize_plan_code(plan_code: Optional[str], wildcard: str | None = None) -> str:
    """Map every "no plan" spelling onto the single wildcard marker."""
    wildcard = wildcard or settings.plan_wildcard
    if plan_code is None:
        return wildcard
    cleaned = plan_code.strip()
    if cleaned.upper() in _PLAN_WILDCARD_ALIASES or cleaned == wildcard:
        return wildcard
    return cleaned


def normalize_group_id(group_id: Optional[str], sentinel: str | None = None) -> str:
    """Map blank and all-zero group ids onto the no-group sentinel."""
    sentinel = sentinel or settings.no_group_sentinel
    if group_id is None:
        return sentinel
    cleaned = group_id.strip()
    if not cleaned or set(cleaned) == {"0"}:
        return sentinel
    return cleaned


def normalize_state_code(state: Optional[str]) -> Optional[str]:
    """Two-letter upper-case jurisdiction code, or ``None`` when *state* is not one."""
    if state is None:
        return None
    cleaned = state.strip().upper()
    if len(cleaned) == 2 and cleaned.isalpha():
        return cleaned
    return None


def map_policy_status(certificate_status: Optional[str]) -> str:
    if not certificate_status or not certificate_status.strip():
        return "Active"
    return _POLICY_STATUS.get(certificate_status.strip().upper(), "Pending")


class SplitConfigExtractor:
    """Normalizes raw split rows into ordered certificate configurations.

    The extractor is stateless; :meth:`extract` is a pure function of the
    snapshot and the settings passed at construction.
    """

    def __init__(
        self,
        *,
        no_group_sentinel: str | None = None,
        plan_wildcard: str | None = None,
        active_record_statuses: list[str] | None = None,
        active_certificate_statuses: list[str] | None = None,
    ) -> None:
        self.no_group_sentinel = no_group_sentinel or settings.no_group_sentinel
        self.plan_wildcard = plan_wildcard or settings.plan_wildcard
        statuses = active_record_statuses if active_record_statuses is not None else settings.active_record_statuses
        cert_statuses = (
            active_certificate_statuses
            if active_certificate_statuses is not None
            else settings.active_certificate_statuses
        )
        self.active_record_statuses = {s.upper() for s in statuses}
        self.active_certificate_statuses = {s.upper() for s in cert_statuses}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def extract(self, snapshot: Snapshot) -> ExtractionResult:
        """Build configurations and policies for every active certificate."""
        result = ExtractionResult(brokers={b.broker_id: b for b in snapshot.brokers})

        rows_by_cert: dict[str, list[CertificateSplitRecord]] = defaultdict(list)
        for record in snapshot.records:
            if not self._is_active(record):
                result.inactive_rows_dropped += 1
                continue
            rows_by_cert[record.certificate_id].append(record)

        for certificate_id in sorted(rows_by_cert):
            rows = sorted(
                rows_by_cert[certificate_id],
                key=lambda r: (r.split_sequence, r.level, r.broker_id),
            )
            config = self._build_configuration(certificate_id, rows)
            result.certificates.append(config)
            result.policies.append(self._build_policy(config, rows[0]))
            result.records_by_certificate[certificate_id] = rows

        self._check_references(snapshot, result)

        logger.info(
            "Extracted %d certificates (%d inactive rows dropped, %d warnings)",
            len(result.certificates),
            result.inactive_rows_dropped,
            len(result.warnings),
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_active(self, record: CertificateSplitRecord) -> bool:
        if record.record_status and record.record_status.strip():
            if record.record_status.strip().upper() not in self.active_record_statuses:
                return False
        if record.certificate_status and record.certificate_status.strip():
            if record.certificate_status.strip().upper() not in self.active_certificate_statuses:
                return False
        return True

    def _build_configuration(
        self, certificate_id: str, rows: list[CertificateSplitRecord]
    ) -> CertificateConfiguration:
        head = rows[0]
        for row in rows[1:]:
            if row.effective_date != head.effective_date:
                raise SnapshotError(
                    f"certificate {certificate_id} has conflicting effective dates "
                    f"{head.effective_date} and {row.effective_date}"
                )

        by_sequence: dict[int, list[CertificateSplitRecord]] = defaultdict(list)
        for row in rows:
            by_sequence[row.split_sequence].append(row)

        splits: list[Split] = []
        for sequence in sorted(by_sequence):
            tiers: dict[int, SplitTier] = {}
            for row in by_sequence[sequence]:
                # Duplicate rows for a level keep the first by broker id
                if row.level in tiers:
                    continue
                tiers[row.level] = SplitTier(
                    level=row.level,
                    broker_id=row.broker_id.strip(),
                    split_percent=row.split_percent,
                    schedule_code=(row.schedule_code or "").strip() or None,
                    commission_rate=row.commission_rate,
                )
            ordered = [tiers[level] for level in sorted(tiers)]
            writing = ordered[0]
            splits.append(
                Split(
                    sequence=sequence,
                    split_percent=writing.split_percent,
                    writing_broker_id=writing.broker_id,
                    tiers=ordered,
                    signature=split_signature(
                        writing.split_percent,
                        [(t.level, t.broker_id, t.schedule_code) for t in ordered],
                    ),
                )
            )

        group_id = normalize_group_id(head.group_id, self.no_group_sentinel)
        return CertificateConfiguration(
            certificate_id=certificate_id,
            group_id=group_id,
            effective_date=head.effective_date,
            product_code=head.product_code.strip(),
            plan_code=normalize_plan_code(head.plan_code, self.plan_wildcard),
            issued_state=self._state_code(certificate_id, head.issued_state),
            splits=splits,
            config_signature=config_signature(
                [(s.sequence, s.split_percent, s.signature) for s in splits]
            ),
            total_split_percent=sum((s.split_percent for s in splits), Decimal(0)),
            is_direct_to_consumer=group_id == self.no_group_sentinel,
        )

    def _state_code(self, certificate_id: str, raw: Optional[str]) -> Optional[str]:
        state = normalize_state_code(raw)
        if state is None and raw is not None and raw.strip():
            logger.warning(
                "Certificate %s has unusable issued state %r; treating it as unknown",
                certificate_id,
                raw,
            )
        return state

    def _build_policy(
        self, config: CertificateConfiguration, head: CertificateSplitRecord
    ) -> Policy:
        return Policy(
            policy_id=config.certificate_id,
            certificate_id=config.certificate_id,
            group_id=config.group_id,
            effective_date=config.effective_date,
            product_code=config.product_code,
            plan_code=config.plan_code,
            issued_state=config.issued_state,
            writing_broker_id=config.splits[0].writing_broker_id,
            premium=head.premium,
            status=map_policy_status(head.certificate_status),
            is_direct_to_consumer=config.is_direct_to_consumer,
        )

    def _check_references(self, snapshot: Snapshot, result: ExtractionResult) -> None:
        known_brokers = set(result.brokers)
        missing_brokers: set[str] = set()
        missing_schedules: set[str] = set()
        known_schedules = (
            {s.schedule_code for s in snapshot.schedules}
            if snapshot.schedules is not None
            else None
        )

        for config in result.certificates:
            missing: list[str] = []
            for split in config.splits:
                for tier in split.tiers:
                    if tier.broker_id not in known_brokers:
                        missing_brokers.add(tier.broker_id)
                        missing.append(f"broker {tier.broker_id}")
                    if (
                        known_schedules is not None
                        and tier.schedule_code
                        and tier.schedule_code not in known_schedules
                    ):
                        missing_schedules.add(tier.schedule_code)
                        missing.append(f"schedule {tier.schedule_code}")
            if missing:
                result.missing_references[config.certificate_id] = sorted(set(missing))

        for broker_id in sorted(missing_brokers):
            message = f"broker {broker_id} is not in the broker master list"
            logger.warning(message)
            result.warnings.append(message)
        for code in sorted(missing_schedules):
            message = f"schedule {code} is not in the schedule master list"
            logger.warning(message)
            result.warnings.append(message)
