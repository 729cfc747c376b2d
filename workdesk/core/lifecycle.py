import logging

from sqlalchemy.orm import Session

from workdesk.core.errors import ConflictError, NotFoundError, ValidationError
from workdesk.core.instantiation import instantiate_follow_up
from workdesk.core.models import ActivityType, EntityType
from workdesk.db import analytics, instances
from workdesk.db.tables import FieldInstance, FnInstance, FnTemplate, TaskInstance

logger = logging.getLogger(__name__)


def close_task(db: Session, task_instance: TaskInstance, user_id: int) -> bool:
    if not instances.close_instance(db, task_instance, user_id):
        return False
    analytics.record_activity(
        db,
        user_id=user_id,
        activity_type=ActivityType.COMPLETE.value,
        entity_type=EntityType.TASK.value,
        entity_id=task_instance.id,
        description=f"Closed task instance {task_instance.code}",
    )
    return True


def close_fn(
    db: Session,
    fn_instance: FnInstance,
    user_id: int,
    follow_up_fn_template_id: int | None = None,
) -> tuple[bool, FnInstance | None]:
    """Close a fn instance and create its follow-up lazily.

    Choice functions only get the follow-up the closer selected; other
    functions follow their template's ``next_follow_up_fn_template_id`` and
    do not accept a selection. Returns (closed, follow-up instance).
    """
    template = db.get(FnTemplate, fn_instance.fn_template_id)
    if follow_up_fn_template_id is not None and not (template and template.is_choice):
        raise ValidationError(
            f"Fn instance {fn_instance.id} is not a choice function; "
            "its follow-up cannot be selected"
        )
    if not instances.close_instance(db, fn_instance, user_id):
        return False, None

    analytics.record_activity(
        db,
        user_id=user_id,
        activity_type=ActivityType.COMPLETE.value,
        entity_type=EntityType.FUNCTION.value,
        entity_id=fn_instance.id,
        description=f"Closed fn instance {fn_instance.id}",
    )

    if template is None:
        return True, None
    next_id = (
        follow_up_fn_template_id
        if template.is_choice
        else template.next_follow_up_fn_template_id
    )
    follow_up = None
    if next_id is not None:
        follow_up = instantiate_follow_up(db, fn_instance, next_id, user_id)
    return True, follow_up


def close_field(db: Session, field_instance: FieldInstance, user_id: int) -> bool:
    if not instances.close_instance(db, field_instance, user_id):
        return False
    analytics.record_activity(
        db,
        user_id=user_id,
        activity_type=ActivityType.COMPLETE.value,
        entity_type=EntityType.FIELD.value,
        entity_id=field_instance.id,
        description=f"Closed field instance {field_instance.id}",
    )
    return True


def lineage(db: Session, field_instance_id: int):
    """Return (field instance, fn instance, task instance) for a field."""
    field_instance = instances.get_field_instance(db, field_instance_id)
    if not field_instance:
        raise NotFoundError(f"Field instance {field_instance_id} not found")
    fn_instance = instances.get_fn_instance(db, field_instance.fn_instance_id)
    task_instance = instances.get_task_instance(db, fn_instance.task_instance_id)
    return field_instance, fn_instance, task_instance


def ensure_open(field_instance, fn_instance, task_instance):
    for label, instance in (
        ("Task instance", task_instance),
        ("Fn instance", fn_instance),
        ("Field instance", field_instance),
    ):
        if instance.closed_at is not None:
            raise ConflictError(f"{label} {instance.id} is closed")
    if task_instance.is_archived:
        raise ConflictError(f"Task instance {task_instance.id} is archived")
