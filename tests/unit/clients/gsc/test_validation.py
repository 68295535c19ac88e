"""Tests for Search Analytics row and aggregate validation."""

import math

import pytest

from gscnav_mcp.clients.gsc.validation import (
    validate_metrics,
    validate_search_analytics_data,
)
from gscnav_mcp.core.exceptions import ValidationError
from gscnav_mcp.models import AggregatedMetrics, DataPoint


class TestValidateSearchAnalyticsData:
    """Test row-level repairs."""

    def test_repairs_invalid_row(self):
        result = validate_search_analytics_data(
            [{"query": "shoes", "clicks": -5, "impressions": 10, "ctr": -1, "position": 0}]
        )

        row = result[0]
        assert row.clicks == 0
        assert row.impressions == 10
        assert row.ctr == 0
        assert row.position == 100

    def test_valid_rows_unchanged(self):
        rows = [
            DataPoint(query="shoes", clicks=10, impressions=100, ctr=0.1, position=5),
            DataPoint(page="https://example.com/", clicks=0, impressions=3, ctr=0.0, position=42.5),
        ]

        assert validate_search_analytics_data(rows) == rows

    def test_idempotent(self):
        once = validate_search_analytics_data(
            [
                {"query": "a", "clicks": -1, "impressions": "x", "ctr": 2, "position": 150},
                {"query": "b", "clicks": 3, "impressions": 9, "ctr": None, "position": "2.5"},
            ]
        )

        assert validate_search_analytics_data(once) == once

    def test_recomputes_ctr_above_one(self):
        result = validate_search_analytics_data(
            [{"query": "a", "clicks": 2, "impressions": 8, "ctr": 3.0, "position": 4}]
        )
        assert result[0].ctr == pytest.approx(0.25)

    def test_non_finite_values(self):
        result = validate_search_analytics_data(
            [{"query": "a", "clicks": math.inf, "impressions": 10, "ctr": math.nan, "position": math.inf}]
        )

        assert result[0].clicks == 0
        assert result[0].ctr == 0
        assert result[0].position == 100

    def test_clicks_above_impressions_left_as_given(self, caplog):
        result = validate_search_analytics_data(
            [{"query": "boots", "clicks": 50, "impressions": 40, "ctr": 1.25, "position": 3}]
        )

        assert result[0].clicks == 50
        assert result[0].impressions == 40
        assert "clicks exceed impressions" in caplog.text

    def test_ctr_clamped_when_clicks_exceed_impressions(self, caplog):
        result = validate_search_analytics_data(
            [{"query": "boots", "clicks": 50, "impressions": 40, "ctr": 1.25, "position": 3}]
        )

        assert result[0].ctr == 1.0
        assert "invalid CTR for item 0" in caplog.text
        assert validate_search_analytics_data(result) == result

    def test_does_not_mutate_input(self):
        row = {"query": "a", "clicks": -1, "impressions": 1, "ctr": 0, "position": 1}
        validate_search_analytics_data([row])
        assert row["clicks"] == -1

    def test_keeps_classification_fields(self):
        result = validate_search_analytics_data(
            [{"query": "acme", "clicks": 1, "impressions": 2, "ctr": 0.5, "position": 1, "type": "branded", "category": "bofu"}]
        )
        assert result[0].type == "branded"
        assert result[0].category == "bofu"

    def test_empty_list(self):
        assert validate_search_analytics_data([]) == []

    def test_rejects_non_list(self):
        with pytest.raises(ValidationError, match="expected list"):
            validate_search_analytics_data({"rows": []})

    def test_rejects_non_object_item(self):
        with pytest.raises(ValidationError):
            validate_search_analytics_data([42])


class TestValidateMetrics:
    """Test aggregate-level checks."""

    def test_valid_metrics_pass(self):
        metrics = AggregatedMetrics(
            total_clicks=60, total_impressions=140, avg_ctr=60 / 140, avg_position=4.4
        )
        assert validate_metrics(metrics) is metrics

    def test_accepts_mapping(self):
        result = validate_metrics(
            {"total_clicks": 0, "total_impressions": 0, "avg_ctr": 0, "avg_position": 0}
        )
        assert isinstance(result, AggregatedMetrics)

    @pytest.mark.parametrize(
        "values, message",
        [
            ({"total_clicks": -1, "total_impressions": 10, "avg_ctr": 0, "avg_position": 1}, "negative"),
            ({"total_clicks": 11, "total_impressions": 10, "avg_ctr": 1, "avg_position": 1}, "clicks exceed"),
            ({"total_clicks": 1, "total_impressions": 10, "avg_ctr": 1.5, "avg_position": 1}, "CTR"),
            ({"total_clicks": 1, "total_impressions": 10, "avg_ctr": 0.1, "avg_position": 101}, "position"),
        ],
    )
    def test_rejects_inconsistent_metrics(self, values, message):
        with pytest.raises(ValidationError, match=message):
            validate_metrics(values)

    def test_rejects_non_object(self):
        with pytest.raises(ValidationError):
            validate_metrics([1, 2, 3])

    def test_rejects_malformed_mapping(self):
        with pytest.raises(ValidationError):
            validate_metrics({"total_clicks": "lots"})
