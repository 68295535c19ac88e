"""Validation for Search Analytics rows and aggregates.

Two passes with different failure policies:

- Row-level validation repairs anomalies (negative counts, impossible CTR
  or position values) and logs each correction.
- Aggregate-level validation raises ``ValidationError`` on inconsistent totals.
"""

import logging
import math
from collections.abc import Mapping, Sequence
from typing import Any

from gscnav_mcp.core.exceptions import ValidationError
from gscnav_mcp.models.search_analytics import AggregatedMetrics, DataPoint

logger = logging.getLogger(__name__)

WORST_POSITION = 100.0


def _as_number(value: Any) -> float | None:
    """Return ``value`` as a float, or None when it is non-numeric or NaN."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None

    if math.isnan(number):
        return None
    return number


def _validate_count(value: Any, field: str, index: int) -> int:
    number = _as_number(value)
    if number is None or number < 0 or math.isinf(number):
        logger.warning(f"Data validation warning: invalid {field} for item {index}")
        return 0
    return int(number)


def validate_search_analytics_data(
    data: Sequence[DataPoint | Mapping[str, Any]],
) -> list[DataPoint]:
    """Repair malformed rows and return them as ``DataPoint`` objects.

    Args:
        data: Rows as ``DataPoint`` instances or plain mappings

    Returns:
        New list of validated rows; inputs are never mutated

    Raises:
        ValidationError: If ``data`` is not a list of rows
    """
    if not isinstance(data, (list, tuple)):
        raise ValidationError("Invalid data structure: expected list")

    validated: list[DataPoint] = []
    for index, item in enumerate(data):
        if isinstance(item, DataPoint):
            values = item.model_dump()
        elif isinstance(item, Mapping):
            values = dict(item)
        else:
            raise ValidationError(
                f"Invalid data structure: item {index} is {type(item).__name__}"
            )

        clicks = _validate_count(values.get("clicks"), "clicks", index)
        impressions = _validate_count(values.get("impressions"), "impressions", index)

        if impressions < clicks:
            logger.warning(
                f"Data validation warning: clicks exceed impressions for item {index}"
            )

        ctr = _as_number(values.get("ctr"))
        if ctr is None or ctr < 0 or ctr > 1 or math.isinf(ctr):
            logger.warning(f"Data validation warning: invalid CTR for item {index}")
            ctr = min(clicks / impressions, 1.0) if impressions > 0 else 0.0

        position = _as_number(values.get("position"))
        if (
            position is None
            or math.isinf(position)
            or position < 1
            or position > WORST_POSITION
        ):
            logger.warning(f"Data validation warning: invalid position for item {index}")
            position = WORST_POSITION

        values.update(
            clicks=clicks, impressions=impressions, ctr=ctr, position=position
        )
        validated.append(DataPoint.model_validate(values))

    return validated


def validate_metrics(metrics: AggregatedMetrics | Mapping[str, Any]) -> AggregatedMetrics:
    """Check aggregate totals for internal consistency.

    Raises:
        ValidationError: On a non-object input, negative totals, clicks above
            impressions, CTR outside [0, 1] or position outside [0, 100]
    """
    if isinstance(metrics, AggregatedMetrics):
        result = metrics
    elif isinstance(metrics, Mapping):
        try:
            result = AggregatedMetrics.model_validate(metrics)
        except ValueError as e:
            raise ValidationError(f"Invalid metrics data structure: {e}") from e
    else:
        raise ValidationError("Invalid metrics data structure")

    if result.total_clicks < 0 or result.total_impressions < 0:
        raise ValidationError("Invalid metrics: negative values detected")

    if result.total_impressions < result.total_clicks:
        raise ValidationError("Invalid metrics: clicks exceed impressions")

    if not 0 <= result.avg_ctr <= 1:
        raise ValidationError("Invalid CTR value: must be between 0 and 1")

    if not 0 <= result.avg_position <= WORST_POSITION:
        raise ValidationError("Invalid position value: must be between 0 and 100")

    return result
