"""Janus ingest package — snapshot loading and split-configuration extraction.

- :class:`SnapshotLoader` — reads the raw CSV snapshot
- :class:`SplitConfigExtractor` — normalizes rows into certificate configurations
"""

from janus.ingest.extractor import SplitConfigExtractor
from janus.ingest.loader import SnapshotLoader
from janus.ingest.schemas import (
    BrokerRecord,
    CertificateConfiguration,
    CertificateSplitRecord,
    ExtractionResult,
    NaturalKey,
    Policy,
    ScheduleRecord,
    Snapshot,
    YearKey,
)

__all__ = [
    "SnapshotLoader",
    "SplitConfigExtractor",
    "BrokerRecord",
    "CertificateConfiguration",
    "CertificateSplitRecord",
    "ExtractionResult",
    "NaturalKey",
    "Policy",
    "ScheduleRecord",
    "Snapshot",
    "YearKey",
]
