"""Conditional action evaluation.

After an input value has been written, the rules attached to the input's
template are evaluated against the new value and the matching ones are
applied. Every rule runs in its own savepoint: a rule that fails is rolled
back and reported, the others still apply.
"""
import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from workdesk.core import lifecycle
from workdesk.core.conditions import condition_met
from workdesk.core.errors import ConflictError, NotFoundError, WorkdeskError
from workdesk.core.models import ActivityType, ConditionalActionType, EntityType
from workdesk.core.notifications import NotificationDispatcher
from workdesk.core.targets import target_from_row
from workdesk.db import analytics, instances, repository
from workdesk.db.tables import (
    ConditionalAction,
    FieldInstance,
    FnInstance,
    InputInstance,
    InputTemplate,
    TaskInstance,
)

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    action_id: int
    action_name: str
    action_type: str
    detail: str


@dataclass
class ActionFailure:
    action_id: int
    action_name: str
    error_type: str
    message: str


@dataclass
class EvaluationResult:
    input_instance_id: int
    applied: list[ActionOutcome] = field(default_factory=list)
    not_triggered: list[int] = field(default_factory=list)
    failures: list[ActionFailure] = field(default_factory=list)


@dataclass
class _Context:
    input_instance: InputInstance
    field_instance: FieldInstance
    fn_instance: FnInstance
    task_instance: TaskInstance
    user_id: int


class RuleEvaluator:
    def __init__(self, notifier: NotificationDispatcher | None = None):
        self.notifier = notifier or NotificationDispatcher()

    def evaluate(
        self, db: Session, input_instance: InputInstance, user_id: int
    ) -> EvaluationResult:
        result = EvaluationResult(input_instance_id=input_instance.id)
        template = db.get(InputTemplate, input_instance.input_template_id)
        rules = repository.get_conditional_actions_for_input(
            db, input_instance.input_template_id
        )
        if not rules:
            return result

        field_instance, fn_instance, task_instance = lifecycle.lineage(
            db, input_instance.field_instance_id
        )
        ctx = _Context(input_instance, field_instance, fn_instance, task_instance, user_id)

        for rule in rules:
            try:
                with db.begin_nested():
                    triggered = condition_met(
                        template.condition,
                        template.comparison_value,
                        input_instance.value,
                    )
                    if not triggered:
                        result.not_triggered.append(rule.id)
                        continue
                    detail = self._apply(db, rule, ctx)
                result.applied.append(
                    ActionOutcome(rule.id, rule.name, rule.type, detail)
                )
            except (WorkdeskError, SQLAlchemyError) as e:
                logger.warning(
                    "Conditional action %s (%s) on input instance %s failed: %s",
                    rule.id,
                    rule.type,
                    input_instance.id,
                    e,
                )
                result.failures.append(
                    ActionFailure(rule.id, rule.name, type(e).__name__, str(e))
                )
                analytics.record_activity(
                    db,
                    user_id=user_id,
                    activity_type=ActivityType.ERROR.value,
                    entity_type=EntityType.INPUT.value,
                    entity_id=input_instance.id,
                    description=f"Conditional action '{rule.name}' failed: {e}"[:500],
                    details={"conditional_action_id": rule.id, "error": type(e).__name__},
                )

        db.commit()
        logger.info(
            "Evaluated %s rules for input instance %s: %s applied, %s failed",
            len(rules),
            input_instance.id,
            len(result.applied),
            len(result.failures),
        )
        return result

    def _apply(self, db: Session, rule: ConditionalAction, ctx: _Context) -> str:
        target = target_from_row(rule)
        action_type = ConditionalActionType(rule.type)

        if action_type == ConditionalActionType.MARK_TASK_AS_DONE:
            if target.task_template_id != ctx.task_instance.task_template_id:
                raise NotFoundError(
                    f"Task template {target.task_template_id} is not the template "
                    f"of task instance {ctx.task_instance.id}"
                )
            closed = lifecycle.close_task(db, ctx.task_instance, ctx.user_id)
            return _closed_detail("task instance", [ctx.task_instance.id], closed)

        if action_type == ConditionalActionType.MARK_FN_AS_DONE:
            fns = instances.find_fn_instances_by_template(
                db, ctx.task_instance.id, target.fn_template_id
            )
            if not fns:
                raise NotFoundError(
                    f"No instance of fn template {target.fn_template_id} in "
                    f"task instance {ctx.task_instance.id}"
                )
            if any(f.closed_at is None for f in fns):
                _ensure_task_open(ctx.task_instance)
            closed = False
            for fn_instance in fns:
                changed, _ = lifecycle.close_fn(db, fn_instance, ctx.user_id)
                closed = closed or changed
            return _closed_detail("fn instance", [f.id for f in fns], closed)

        if action_type == ConditionalActionType.MARK_FIELD_AS_DONE:
            fields = instances.find_field_instances_by_template(
                db, ctx.task_instance.id, target.field_template_id
            )
            same_fn = [f for f in fields if f.fn_instance_id == ctx.fn_instance.id]
            fields = same_fn or fields
            if not fields:
                raise NotFoundError(
                    f"No instance of field template {target.field_template_id} in "
                    f"task instance {ctx.task_instance.id}"
                )
            for field_instance in fields:
                if field_instance.closed_at is None:
                    _ensure_fn_open(db, field_instance, ctx.task_instance)
            closed = False
            for field_instance in fields:
                closed = lifecycle.close_field(db, field_instance, ctx.user_id) or closed
            return _closed_detail("field instance", [f.id for f in fields], closed)

        if action_type == ConditionalActionType.ADD_DYNAMIC_INPUT:
            return self._add_dynamic_input(db, rule, target.input_template_id, ctx)

        return self._notify_users(db, rule, ctx)

    def _add_dynamic_input(
        self, db: Session, rule: ConditionalAction, input_template_id: int, ctx: _Context
    ) -> str:
        field_id = ctx.field_instance.id
        existing = instances.find_dynamic_input(db, field_id, rule.id)
        if existing:
            return f"dynamic input {existing.id} already present"

        # Earlier rules of this evaluation may have closed the target field.
        lifecycle.ensure_open(ctx.field_instance, ctx.fn_instance, ctx.task_instance)
        if not db.get(InputTemplate, input_template_id):
            raise NotFoundError(f"Input template {input_template_id} not found")
        try:
            created = instances.add_dynamic_input(
                db, field_id, input_template_id, rule.id, ctx.user_id
            )
        except ConflictError:
            # Lost the race against a concurrent write of the same rule.
            existing = instances.find_dynamic_input(db, field_id, rule.id)
            return f"dynamic input {existing.id if existing else '?'} already present"

        analytics.record_activity(
            db,
            user_id=ctx.user_id,
            activity_type=ActivityType.CREATE.value,
            entity_type=EntityType.INPUT.value,
            entity_id=created.id,
            description=f"Conditional action '{rule.name}' added a dynamic input",
            details={"conditional_action_id": rule.id, "field_instance_id": field_id},
        )
        return f"created dynamic input {created.id}"

    def _notify_users(self, db: Session, rule: ConditionalAction, ctx: _Context) -> str:
        payload: dict[str, Any] = {
            "conditional_action_id": rule.id,
            "task_instance_id": ctx.task_instance.id,
            "task_code": ctx.task_instance.code,
            "input_instance_id": ctx.input_instance.id,
            "value": ctx.input_instance.value,
        }
        notified = []
        for user_id in repository.get_notify_user_ids(db, rule.id):
            user = repository.get_user(db, user_id)
            if not user or user.disabled:
                logger.warning(
                    "Skipping notification of missing or disabled user %s for action %s",
                    user_id,
                    rule.id,
                )
                continue
            try:
                self.notifier.notify(user.id, user.email, rule.name, payload)
            except Exception as e:
                logger.error("Failed to dispatch notification to user %s: %s", user.id, e)
                continue
            analytics.record_activity(
                db,
                user_id=ctx.user_id,
                activity_type=ActivityType.NOTIFICATION.value,
                entity_type=EntityType.NOTIFICATION.value,
                entity_id=ctx.task_instance.id,
                description=f"Notified user {user.id}: {rule.name}",
                details={"conditional_action_id": rule.id, "recipient_id": user.id},
            )
            notified.append(user.id)
        return f"notified users {notified}"


def _ensure_task_open(task_instance: TaskInstance):
    if task_instance.closed_at is not None:
        raise ConflictError(f"Task instance {task_instance.id} is closed")
    if task_instance.is_archived:
        raise ConflictError(f"Task instance {task_instance.id} is archived")


def _ensure_fn_open(db: Session, field_instance: FieldInstance, task_instance: TaskInstance):
    _ensure_task_open(task_instance)
    fn_instance = instances.get_fn_instance(db, field_instance.fn_instance_id)
    if fn_instance.closed_at is not None:
        raise ConflictError(f"Fn instance {fn_instance.id} is closed")


def _closed_detail(label: str, ids: list[int], closed: bool) -> str:
    verb = "closed" if closed else "already closed"
    return f"{verb} {label} {', '.join(str(i) for i in ids)}"
