"""Tests for the metrics derivation and preview endpoints."""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from ptrs_core.errors import RunNotFound
from ptrs_core.models.metrics import DerivationSummary, MetricsPreview, PaymentTimeBands

TENANT = "tenantAAAA"
RUN = "run-2025-h1"
URL = f"/api/v1/tenants/{TENANT}/runs/{RUN}/metrics/derive"
PREVIEW_URL = f"/api/v1/tenants/{TENANT}/runs/{RUN}/metrics"


class TestDeriveMetrics:
    @pytest.mark.asyncio
    async def test_derive(self, client, mock_tx) -> None:
        summary = DerivationSummary(tenant_id=TENANT, run_id=RUN, applied_count=12, partial_payments=2)
        with patch("api.routers.metrics.PtrsService") as MockService:
            MockService.return_value.derive_metrics = AsyncMock(return_value=summary)
            resp = await client.post(URL, headers={"X-Actor-Id": "user-1"})

        assert resp.status_code == 200
        data = resp.json()
        assert data["applied_count"] == 12
        assert data["reference_counts"]["invoice"] == 0
        assert MockService.call_args.args[0] is mock_tx
        MockService.return_value.derive_metrics.assert_awaited_once_with(RUN)

    @pytest.mark.asyncio
    async def test_unknown_run(self, client) -> None:
        with patch("api.routers.metrics.PtrsService") as MockService:
            MockService.return_value.derive_metrics = AsyncMock(side_effect=RunNotFound(RUN))
            resp = await client.post(URL)

        assert resp.status_code == 404
        assert resp.json() == {"code": "RUN_NOT_FOUND", "detail": f"Reporting run {RUN!r} not found"}

    @pytest.mark.asyncio
    async def test_get_not_allowed(self, client) -> None:
        resp = await client.get(URL)
        assert resp.status_code == 405


class TestMetricsPreview:
    @pytest.mark.asyncio
    async def test_preview(self, client, mock_tx) -> None:
        preview = MetricsPreview(
            tenant_id=TENANT,
            run_id=RUN,
            record_count=8,
            total_value=Decimal("2550.00"),
            small_business_count=6,
            bands=PaymentTimeBands(within_30_days=3, within_30_days_pct=50.0),
            median_payment_days=30.0,
        )
        with patch("api.routers.metrics.PtrsService") as MockService:
            MockService.return_value.metrics_preview = AsyncMock(return_value=preview)
            resp = await client.get(PREVIEW_URL)

        assert resp.status_code == 200
        data = resp.json()
        assert data["record_count"] == 8
        assert data["bands"]["within_30_days_pct"] == 50.0
        assert data["median_payment_days"] == 30.0
        assert data["p95_payment_days"] is None
        assert MockService.call_args.args[0] is mock_tx
        MockService.return_value.metrics_preview.assert_awaited_once_with(RUN)

    @pytest.mark.asyncio
    async def test_unknown_run(self, client) -> None:
        with patch("api.routers.metrics.PtrsService") as MockService:
            MockService.return_value.metrics_preview = AsyncMock(side_effect=RunNotFound(RUN))
            resp = await client.get(PREVIEW_URL)

        assert resp.status_code == 404
        assert resp.json()["code"] == "RUN_NOT_FOUND"
