"""Payment-timing metric derivation and the report preview."""

from ptrs_core.metrics.engine import MetricsDerivationEngine
from ptrs_core.metrics.preview import build_metrics_preview, percentile_cont

__all__ = ["MetricsDerivationEngine", "build_metrics_preview", "percentile_cont"]
