"""API router modules for the compliance control plane."""

from __future__ import annotations

from api.routers import health, metrics, sbi

__all__ = [
    "health",
    "metrics",
    "sbi",
]
