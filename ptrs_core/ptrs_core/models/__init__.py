"""Domain models for the compliance core."""

from ptrs_core.models.metrics import (
    DerivationSummary,
    DerivedMetrics,
    MetricInputs,
    MetricsPreview,
    MissingDataCounts,
    PaymentTerm,
    PaymentTimeBands,
    PaymentTimeReference,
    TermSource,
)
from ptrs_core.models.sbi import (
    ImportOutcome,
    ImportSummary,
    IssueCode,
    SbiCheck,
    SbiRowChangeInfo,
    SbiStatus,
    SbiUploadDetail,
    SbiUploadInfo,
    StageMergeCounts,
    UploadStatus,
    ValidationCounts,
    ValidationIssue,
    ValidationReport,
    ValidationStatus,
)

__all__ = [
    "DerivationSummary",
    "DerivedMetrics",
    "ImportOutcome",
    "ImportSummary",
    "IssueCode",
    "MetricInputs",
    "MetricsPreview",
    "MissingDataCounts",
    "PaymentTerm",
    "PaymentTimeBands",
    "PaymentTimeReference",
    "SbiCheck",
    "SbiRowChangeInfo",
    "SbiStatus",
    "SbiUploadDetail",
    "SbiUploadInfo",
    "StageMergeCounts",
    "TermSource",
    "UploadStatus",
    "ValidationCounts",
    "ValidationIssue",
    "ValidationReport",
    "ValidationStatus",
]
