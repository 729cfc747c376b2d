import json
import math
import operator
from typing import Any

from workdesk.core.errors import ConfigurationError
from workdesk.core.models import ConditionType

ORDERING = {
    ConditionType.LESS_THAN: operator.lt,
    ConditionType.LESS_THAN_EQUALS: operator.le,
    ConditionType.GREATER_THAN: operator.gt,
    ConditionType.GREATER_THAN_EQUALS: operator.ge,
}


def to_number(value: Any) -> float | None:
    """Parse a value as a finite number, or return None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def to_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value, sort_keys=True)
    return str(value).strip()


def condition_met(condition: str | None, comparison_value: str | None, value: Any) -> bool:
    """Evaluate an input template's condition against a submitted value.

    Raises ConfigurationError when the template's own configuration cannot
    be evaluated. A value that cannot be compared simply does not match.
    """
    if condition is None:
        raise ConfigurationError("Input template has no condition configured")
    try:
        condition = ConditionType(condition)
    except ValueError:
        raise ConfigurationError(f"Unknown condition '{condition}'")
    if comparison_value is None:
        raise ConfigurationError(
            f"Condition {condition.value} has no comparison value configured"
        )

    if value is None:
        return False

    expected = to_number(comparison_value)
    actual = to_number(value)

    if condition == ConditionType.EQUALS:
        if expected is not None and actual is not None:
            return actual == expected
        return to_text(value) == comparison_value.strip()

    if expected is None:
        raise ConfigurationError(
            f"Condition {condition.value} needs a numeric comparison value, "
            f"got '{comparison_value}'"
        )
    if actual is None:
        return False
    return ORDERING[condition](actual, expected)
