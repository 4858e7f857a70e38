"""Pydantic models for the raw snapshot and the extractor's normalized output."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import NamedTuple, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Raw snapshot
# ---------------------------------------------------------------------------


class CertificateSplitRecord(BaseModel):
    """One raw row per (certificate, split sequence, participant level).

    ``paid_broker_id`` is the broker actually paid on the row when it differs
    from the split broker; it feeds broker assignments only and never takes
    part in signature computation.
    """

    certificate_id: str = Field(..., min_length=1)
    group_id: Optional[str] = None
    effective_date: date
    product_code: str = Field(..., min_length=1)
    plan_code: Optional[str] = None
    split_sequence: int = Field(..., ge=1)
    level: int = Field(..., ge=1)
    broker_id: str = Field(..., min_length=1)
    split_percent: Decimal = Field(..., ge=0)
    schedule_code: Optional[str] = None
    paid_broker_id: Optional[str] = None
    issued_state: Optional[str] = None
    premium: Optional[Decimal] = None
    commission_rate: Optional[Decimal] = None
    record_status: Optional[str] = None
    certificate_status: Optional[str] = None


class BrokerRecord(BaseModel):
    """Broker master entry."""

    broker_id: str = Field(..., min_length=1)
    external_id: Optional[str] = None
    name: str = ""


class ScheduleRecord(BaseModel):
    """Commission schedule master entry."""

    schedule_code: str = Field(..., min_length=1)
    name: str = ""


class Snapshot(BaseModel):
    """The fixed raw input of one engine run."""

    records: list[CertificateSplitRecord] = Field(default_factory=list)
    brokers: list[BrokerRecord] = Field(default_factory=list)
    #: ``None`` means no schedule master was supplied and schedule codes are not checked.
    schedules: Optional[list[ScheduleRecord]] = None


# ---------------------------------------------------------------------------
# Natural keys
# ---------------------------------------------------------------------------


class NaturalKey(NamedTuple):
    """Business key a commission structure is expected to be unique for."""

    group_id: str
    effective_date: date
    product_code: str
    plan_code: str


class YearKey(NamedTuple):
    """Key used by Proposal key mappings and the Policy Resolver."""

    group_id: str
    year: int
    product_code: str
    plan_code: str


# ---------------------------------------------------------------------------
# Normalized configuration
# ---------------------------------------------------------------------------


class SplitTier(BaseModel):
    """A single participant level inside one split sequence."""

    level: int
    broker_id: str
    split_percent: Decimal
    schedule_code: Optional[str] = None
    commission_rate: Optional[Decimal] = None


class Split(BaseModel):
    """One split sequence of a certificate with its ordered upline chain."""

    sequence: int
    split_percent: Decimal
    writing_broker_id: str
    tiers: list[SplitTier]
    signature: str


class CertificateConfiguration(BaseModel):
    """A certificate's complete, ordered split structure.

    Attributes
    ----------
    certificate_id:
        Source certificate identifier.
    group_id:
        Normalized group id; the no-group sentinel for direct-to-consumer business.
    plan_code:
        Normalized plan code; the wildcard marker when the source had none.
    splits:
        Split sequences ordered by sequence number.
    config_signature:
        Content hash over the ordered splits.
    total_split_percent:
        Sum of each sequence's split percent.
    """

    certificate_id: str
    group_id: str
    effective_date: date
    product_code: str
    plan_code: str
    issued_state: Optional[str] = None
    splits: list[Split]
    config_signature: str
    total_split_percent: Decimal
    is_direct_to_consumer: bool = False

    @property
    def year(self) -> int:
        return self.effective_date.year

    @property
    def key(self) -> NaturalKey:
        return NaturalKey(self.group_id, self.effective_date, self.product_code, self.plan_code)

    @property
    def year_key(self) -> YearKey:
        return YearKey(self.group_id, self.year, self.product_code, self.plan_code)


class Policy(BaseModel):
    """One policy per certificate, taken from its first split's writing row."""

    policy_id: str
    certificate_id: str
    group_id: str
    effective_date: date
    product_code: str
    plan_code: str
    issued_state: Optional[str] = None
    writing_broker_id: str
    premium: Optional[Decimal] = None
    status: str = "Active"
    is_direct_to_consumer: bool = False

    @property
    def year(self) -> int:
        return self.effective_date.year

    @property
    def year_key(self) -> YearKey:
        return YearKey(self.group_id, self.year, self.product_code, self.plan_code)


class ExtractionResult(BaseModel):
    """Output of :class:`~janus.ingest.extractor.SplitConfigExtractor`."""

    certificates: list[CertificateConfiguration] = Field(default_factory=list)
    policies: list[Policy] = Field(default_factory=list)
    brokers: dict[str, BrokerRecord] = Field(default_factory=dict)
    #: Source rows retained, keyed by certificate id, for broker assignments.
    records_by_certificate: dict[str, list[CertificateSplitRecord]] = Field(default_factory=dict)
    #: Certificates citing brokers or schedules absent from the master lists.
    missing_references: dict[str, list[str]] = Field(default_factory=dict)
    inactive_rows_dropped: int = 0
    warnings: list[str] = Field(default_factory=list)
