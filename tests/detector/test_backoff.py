"""Tests for the per-entity backoff calculation."""

from __future__ import annotations

import pytest

from vybe_alert_engine.detector.backoff import (
    MAX_BACKOFF_SECONDS,
    backoff_window,
    is_backing_off,
)


class TestBackoffWindow:
    @pytest.mark.parametrize(
        ("error_count", "expected"),
        [(0, 1.0), (1, 2.0), (2, 4.0), (5, 32.0), (10, 1024.0), (11, 1800.0), (500, 1800.0)],
    )
    def test_exponential_with_cap(self, error_count: int, expected: float) -> None:
        assert backoff_window(error_count) == expected

    def test_custom_cap(self) -> None:
        assert backoff_window(8, max_seconds=60) == 60.0

    def test_default_cap_is_thirty_minutes(self) -> None:
        assert MAX_BACKOFF_SECONDS == 1800


class TestIsBackingOff:
    def test_no_recorded_error(self) -> None:
        assert not is_backing_off(None, 3, now=1_000.0)

    def test_inside_window(self) -> None:
        assert is_backing_off(1_000.0, 3, now=1_007.9)

    def test_window_expires(self) -> None:
        assert not is_backing_off(1_000.0, 3, now=1_008.0)

    def test_capped_window(self) -> None:
        assert is_backing_off(0.0, 40, now=1_799.0)
        assert not is_backing_off(0.0, 40, now=1_800.0)
