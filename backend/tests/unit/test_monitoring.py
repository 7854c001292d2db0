from __future__ import annotations

import pytest

from spabook.core.exceptions import (
    CapacityExceededException,
    ConcurrencyConflictException,
    InvalidTransitionException,
    PaymentRequiredException,
)
from spabook.errors import _parse_detail, _title_from_status
from spabook.middleware.prometheus_middleware import normalize_path
from spabook.monitoring.prometheus_metrics import REGISTRY, prometheus_metrics


class TestNormalizePath:
    def test_ulid_segment_collapsed(self) -> None:
        path = "/api/v1/bookings/01HF4G12ABCDEF3456789XYZAB/confirm"
        assert normalize_path(path) == "/api/v1/bookings/:id/confirm"

    def test_numeric_segment_collapsed(self) -> None:
        assert normalize_path("/items/42") == "/items/:id"

    def test_static_paths_untouched(self) -> None:
        assert normalize_path("/api/v1/bookings/check-availability") == "/api/v1/bookings/check-availability"


class TestPrometheusMetrics:
    def test_transition_counter(self) -> None:
        before = REGISTRY.get_sample_value(
            "spabook_booking_transitions_total", {"action": "cancel", "outcome": "success"}
        ) or 0.0

        prometheus_metrics.record_transition("cancel", "success")

        after = REGISTRY.get_sample_value(
            "spabook_booking_transitions_total", {"action": "cancel", "outcome": "success"}
        )
        assert after == before + 1

    def test_capacity_rejection_counter(self) -> None:
        before = REGISTRY.get_sample_value("spabook_capacity_rejections_total", {"reason": "full"}) or 0.0

        prometheus_metrics.inc_capacity_rejection("full")

        assert REGISTRY.get_sample_value("spabook_capacity_rejections_total", {"reason": "full"}) == before + 1

    def test_scrape_cache_invalidated_on_write(self) -> None:
        first = prometheus_metrics.get_metrics()
        prometheus_metrics.record_transition("no_show", "success")
        second = prometheus_metrics.get_metrics()

        assert first != second


class TestDomainExceptionMapping:
    @pytest.mark.parametrize(
        "exc, status_code, code",
        [
            (PaymentRequiredException("b1", "confirm", "Payment required to proceed"), 402, "PAYMENT_REQUIRED"),
            (InvalidTransitionException("b1", "completed", "cancel"), 422, "INVALID_TRANSITION"),
            (CapacityExceededException([]), 409, "CAPACITY_EXCEEDED"),
            (ConcurrencyConflictException("b1"), 409, "CONCURRENCY_CONFLICT"),
        ],
    )
    def test_http_mapping(self, exc, status_code: int, code: str) -> None:
        http_exc = exc.to_http_exception()

        assert http_exc.status_code == status_code
        assert http_exc.detail["code"] == code

    def test_parse_detail_envelope(self) -> None:
        detail, code, errors = _parse_detail(
            {"message": "Cannot cancel", "code": "INVALID_TRANSITION", "details": {"booking_id": "b1"}}
        )

        assert detail == "Cannot cancel"
        assert code == "INVALID_TRANSITION"
        assert errors == {"booking_id": "b1"}

    def test_titles(self) -> None:
        assert _title_from_status(402) == "Payment Required"
        assert _title_from_status(418) == "Error"
