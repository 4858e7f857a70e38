"""Shared fixtures: builders for raw split rows and snapshots."""

from __future__ import annotations

import csv
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional, Sequence

import pytest

from janus.ingest.schemas import BrokerRecord, CertificateSplitRecord, Snapshot

BROKER_IDS = ["B1", "B2", "B3", "B4", "B5", "B6", "B7", "B8", "B9"]

# (split percent, upline broker ids from level 1 upward)
SplitSpec = tuple[int | str, Sequence[str]]


def certificate_rows(
    certificate_id: str,
    group_id: Optional[str],
    effective: str,
    product: str,
    plan: Optional[str] = None,
    *,
    splits: Iterable[SplitSpec] = ((100, ("B1", "B2")),),
    state: Optional[str] = "TX",
    schedule: Optional[str] = "S1",
    paid_broker: Optional[str] = None,
    record_status: Optional[str] = "A",
    certificate_status: Optional[str] = "A",
) -> list[CertificateSplitRecord]:
    """Raw rows for one certificate, one row per (split sequence, level)."""
    rows = []
    for sequence, (percent, brokers) in enumerate(splits, start=1):
        for level, broker in enumerate(brokers, start=1):
            rows.append(
                CertificateSplitRecord(
                    certificate_id=certificate_id,
                    group_id=group_id,
                    effective_date=date.fromisoformat(effective),
                    product_code=product,
                    plan_code=plan,
                    split_sequence=sequence,
                    level=level,
                    broker_id=broker,
                    split_percent=Decimal(str(percent)),
                    schedule_code=schedule,
                    paid_broker_id=paid_broker if level == 1 else None,
                    issued_state=state,
                    premium=Decimal("125.50"),
                    commission_rate=Decimal("70") if level == 1 else Decimal("30"),
                    record_status=record_status,
                    certificate_status=certificate_status,
                )
            )
    return rows


@pytest.fixture
def make_rows():
    return certificate_rows


@pytest.fixture
def brokers() -> list[BrokerRecord]:
    return [
        BrokerRecord(broker_id=broker_id, external_id=f"EXT-{broker_id}", name=f"Broker {broker_id}")
        for broker_id in BROKER_IDS
    ]


@pytest.fixture
def make_snapshot(brokers):
    def _make(*certificates: list[CertificateSplitRecord]) -> Snapshot:
        records = [row for rows in certificates for row in rows]
        return Snapshot(records=records, brokers=brokers)

    return _make


@pytest.fixture
def g100_snapshot(make_snapshot):
    """G100: products A and B in 2023 and 2024, one 2-level structure."""
    return make_snapshot(
        certificate_rows("C100-1", "G100", "2023-01-01", "A"),
        certificate_rows("C100-2", "G100", "2023-03-01", "B"),
        certificate_rows("C100-3", "G100", "2024-01-01", "A"),
        certificate_rows("C100-4", "G100", "2024-02-15", "B"),
    )


@pytest.fixture
def g200_snapshot(make_snapshot):
    """G200: product X, S1 in 2023 and S2 in 2024."""
    return make_snapshot(
        certificate_rows("C200-1", "G200", "2023-01-01", "X", splits=[(100, ("B1", "B2"))]),
        certificate_rows("C200-2", "G200", "2023-06-01", "X", splits=[(100, ("B1", "B2"))]),
        certificate_rows("C200-3", "G200", "2024-03-01", "X", splits=[(100, ("B3", "B4"))]),
    )


def write_csv(path: Path, rows: list[dict]) -> Path:
    fieldnames = list(rows[0].keys())
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.DictWriter(fh, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            writer.writerow({k: "" if v is None else v for k, v in row.items()})
    return path


@pytest.fixture
def snapshot_files(tmp_path, g100_snapshot, brokers):
    """G100 snapshot written as CSV files; returns (certificates, brokers)."""
    certs = write_csv(
        tmp_path / "certificates.csv",
        [record.model_dump(mode="json") for record in g100_snapshot.records],
    )
    broker_file = write_csv(tmp_path / "brokers.csv", [b.model_dump() for b in brokers])
    return certs, broker_file
