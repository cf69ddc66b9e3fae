"""Convenience re-exports for the metrics engine."""
from __future__ import annotations

from .calculations import MetricsEngine, derive_metrics, derive_period_comparison
from .history import metrics_frame

__all__ = ["MetricsEngine", "derive_metrics", "derive_period_comparison", "metrics_frame"]
