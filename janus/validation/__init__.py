"""Janus validation package — conformance auditing and integrity checks."""

from janus.validation.conformance import (
    ConformanceAuditor,
    ConformanceClass,
    ConformanceRecord,
    ConformanceReport,
)
from janus.validation.integrity import IntegrityReport, IntegrityVerifier

__all__ = [
    "ConformanceAuditor",
    "ConformanceClass",
    "ConformanceRecord",
    "ConformanceReport",
    "IntegrityReport",
    "IntegrityVerifier",
]
