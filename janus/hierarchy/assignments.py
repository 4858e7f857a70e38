"""Broker assignment builder.

Some source rows pay a broker other than the one named on the split.  Each
such redirect becomes a BrokerAssignment from the split broker to the paid
broker; when a split broker is redirected more than once, the most recent
redirect wins.
"""

from __future__ import annotations

import logging

from janus import ids
from janus.hierarchy.schemas import BrokerAssignment
from janus.ingest.schemas import CertificateSplitRecord

logger = logging.getLogger("janus.hierarchy.assignments")


class BrokerAssignmentBuilder:
    """Derives split-broker -> paid-broker redirects from raw rows."""

    def build(
        self, records_by_certificate: dict[str, list[CertificateSplitRecord]]
    ) -> list[BrokerAssignment]:
        latest: dict[str, BrokerAssignment] = {}
        for certificate_id in sorted(records_by_certificate):
            for row in records_by_certificate[certificate_id]:
                paid = (row.paid_broker_id or "").strip()
                source = row.broker_id.strip()
                if not paid or paid == source:
                    continue
                candidate = BrokerAssignment(
                    id=ids.broker_assignment_id(source),
                    source_broker_id=source,
                    paid_broker_id=paid,
                    effective_date=row.effective_date,
                    certificate_id=certificate_id,
                )
                current = latest.get(source)
                if current is None or (candidate.effective_date, candidate.certificate_id) > (
                    current.effective_date,
                    current.certificate_id,
                ):
                    latest[source] = candidate

        logger.debug("Derived %d broker assignments", len(latest))
        return [latest[source] for source in sorted(latest)]
