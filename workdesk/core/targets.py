"""Conditional action targets as a tagged union.

Rules are stored with four nullable ``targeted_*`` columns; everywhere else
they are handled as exactly one of the target variants below, matched
against the action type when the rule is built.
"""
from dataclasses import dataclass
from typing import Union

from workdesk.core.errors import ConfigurationError
from workdesk.core.models import ConditionalActionType


@dataclass(frozen=True)
class TargetTask:
    task_template_id: int
    column = "targeted_task_template_id"


@dataclass(frozen=True)
class TargetFn:
    fn_template_id: int
    column = "targeted_fn_template_id"


@dataclass(frozen=True)
class TargetField:
    field_template_id: int
    column = "targeted_field_template_id"


@dataclass(frozen=True)
class TargetInput:
    input_template_id: int
    column = "targeted_input_template_id"


Target = Union[TargetTask, TargetFn, TargetField, TargetInput]

# Action type -> the only target variant it accepts (None: no target).
EXPECTED_TARGET = {
    ConditionalActionType.MARK_TASK_AS_DONE: TargetTask,
    ConditionalActionType.MARK_FN_AS_DONE: TargetFn,
    ConditionalActionType.MARK_FIELD_AS_DONE: TargetField,
    ConditionalActionType.ADD_DYNAMIC_INPUT: TargetInput,
    ConditionalActionType.NOTIFY_USERS: None,
}

_VARIANTS = (TargetTask, TargetFn, TargetField, TargetInput)


def check_target(action_type: str, target: Target | None) -> ConditionalActionType:
    try:
        action_type = ConditionalActionType(action_type)
    except ValueError:
        raise ConfigurationError(f"Unknown conditional action type '{action_type}'")

    expected = EXPECTED_TARGET[action_type]
    if expected is None and target is not None:
        raise ConfigurationError(f"{action_type.value} does not take a target")
    if expected is not None and not isinstance(target, expected):
        got = type(target).__name__ if target is not None else "no target"
        raise ConfigurationError(
            f"{action_type.value} needs a {expected.__name__}, got {got}"
        )
    return action_type


def target_columns(target: Target | None) -> dict:
    if target is None:
        return {}
    return {target.column: getattr(target, target.column.removeprefix("targeted_"))}


def target_from_row(action) -> Target | None:
    """Rebuild the target of a stored rule, validating it against its type."""
    set_targets = [
        variant(getattr(action, variant.column))
        for variant in _VARIANTS
        if getattr(action, variant.column) is not None
    ]
    if len(set_targets) > 1:
        raise ConfigurationError(
            f"Conditional action {action.id} has {len(set_targets)} targets set"
        )
    target = set_targets[0] if set_targets else None
    check_target(action.type, target)
    return target
