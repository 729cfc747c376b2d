import logging
from typing import Any

from sqlalchemy.orm import Session

from workdesk.core import lifecycle
from workdesk.core.errors import ConflictError, NotFoundError
from workdesk.core.evaluator import EvaluationResult, RuleEvaluator
from workdesk.core.models import ActivityType, EntityType
from workdesk.core.values import parse_value
from workdesk.db import analytics, instances
from workdesk.db.repository import now
from workdesk.db.tables import FnInstance, InputInstance, InputTemplate

logger = logging.getLogger(__name__)


def write_input_value(
    db: Session,
    evaluator: RuleEvaluator,
    input_instance_id: int,
    raw_value: Any,
    user_id: int,
    remarks: str | None = None,
) -> tuple[InputInstance, EvaluationResult]:
    """Store a value on an input instance, then run its conditional actions.

    The value write is committed before any action runs, so a failing action
    never undoes it; action failures come back in the evaluation result.
    """
    input_instance = instances.get_input_instance(db, input_instance_id)
    if not input_instance:
        raise NotFoundError(f"Input instance {input_instance_id} not found")
    field_instance, fn_instance, task_instance = lifecycle.lineage(
        db, input_instance.field_instance_id
    )
    lifecycle.ensure_open(field_instance, fn_instance, task_instance)

    template = db.get(InputTemplate, input_instance.input_template_id)
    typed = parse_value(template.type, raw_value)

    input_instance.value = typed.to_json()
    input_instance.file_paths = typed.file_paths()
    input_instance.updated_by_id = user_id
    input_instance.updated_at = now()
    if remarks is not None:
        input_instance.remarks = remarks
    analytics.record_activity(
        db,
        user_id=user_id,
        activity_type=ActivityType.UPDATE.value,
        entity_type=EntityType.INPUT.value,
        entity_id=input_instance.id,
        description=f"Updated value of input '{template.name}'",
        details={"value": input_instance.value},
    )
    db.commit()
    db.refresh(input_instance)

    result = evaluator.evaluate(db, input_instance, user_id)
    db.refresh(input_instance)
    return input_instance, result


def close_task_instance(db: Session, task_instance_id: int, user_id: int):
    task_instance = instances.get_task_instance(db, task_instance_id)
    if not task_instance:
        raise NotFoundError(f"Task instance {task_instance_id} not found")
    closed = lifecycle.close_task(db, task_instance, user_id)
    db.commit()
    db.refresh(task_instance)
    return task_instance, closed


def close_fn_instance(
    db: Session,
    fn_instance_id: int,
    user_id: int,
    follow_up_fn_template_id: int | None = None,
) -> tuple[FnInstance, bool, FnInstance | None]:
    fn_instance = instances.get_fn_instance(db, fn_instance_id)
    if not fn_instance:
        raise NotFoundError(f"Fn instance {fn_instance_id} not found")
    task_instance = instances.get_task_instance(db, fn_instance.task_instance_id)
    if task_instance.closed_at is not None and fn_instance.closed_at is None:
        raise ConflictError(f"Task instance {task_instance.id} is closed")
    try:
        closed, follow_up = lifecycle.close_fn(
            db, fn_instance, user_id, follow_up_fn_template_id
        )
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(fn_instance)
    if follow_up is not None:
        db.refresh(follow_up)
    return fn_instance, closed, follow_up


def close_field_instance(db: Session, field_instance_id: int, user_id: int):
    field_instance, fn_instance, task_instance = lifecycle.lineage(
        db, field_instance_id
    )
    if field_instance.closed_at is None and (
        fn_instance.closed_at is not None or task_instance.closed_at is not None
    ):
        raise ConflictError(f"Parent of field instance {field_instance_id} is closed")
    closed = lifecycle.close_field(db, field_instance, user_id)
    db.commit()
    db.refresh(field_instance)
    return field_instance, closed


def archive_task_instance(db: Session, task_instance_id: int, user_id: int):
    task_instance = instances.get_task_instance(db, task_instance_id)
    if not task_instance:
        raise NotFoundError(f"Task instance {task_instance_id} not found")
    if not task_instance.is_archived:
        task_instance.is_archived = True
        task_instance.updated_at = now()
        analytics.record_activity(
            db,
            user_id=user_id,
            activity_type=ActivityType.UPDATE.value,
            entity_type=EntityType.TASK.value,
            entity_id=task_instance.id,
            description=f"Archived task instance {task_instance.code}",
        )
        db.commit()
        db.refresh(task_instance)
        logger.info("Archived task instance %s", task_instance.id)
    return task_instance
