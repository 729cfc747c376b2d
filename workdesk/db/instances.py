from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workdesk.core.errors import ConflictError
from workdesk.db.repository import now
from workdesk.db.tables import (
    FieldInstance,
    FnInstance,
    FnInstanceDropdownTemplate,
    InputInstance,
    InputInstanceDropdownTemplate,
    MetadataInstance,
    TaskInstance,
    TaskInstanceDropdownTemplate,
)


def get_task_instance(db: Session, task_instance_id: int) -> TaskInstance | None:
    return db.query(TaskInstance).filter(TaskInstance.id == task_instance_id).first()


def list_task_instances(
    db: Session,
    customer_id: int | None = None,
    assignee_id: int | None = None,
    open_only: bool = False,
    include_archived: bool = False,
) -> list[TaskInstance]:
    query = db.query(TaskInstance)
    if customer_id is not None:
        query = query.filter(TaskInstance.customer_id == customer_id)
    if assignee_id is not None:
        query = query.filter(TaskInstance.assignee_id == assignee_id)
    if open_only:
        query = query.filter(TaskInstance.closed_at.is_(None))
    if not include_archived:
        query = query.filter(TaskInstance.is_archived.is_(False))
    return query.order_by(TaskInstance.id).all()


def get_fn_instance(db: Session, fn_instance_id: int) -> FnInstance | None:
    return db.query(FnInstance).filter(FnInstance.id == fn_instance_id).first()


def get_field_instance(db: Session, field_instance_id: int) -> FieldInstance | None:
    return (
        db.query(FieldInstance).filter(FieldInstance.id == field_instance_id).first()
    )


def get_input_instance(db: Session, input_instance_id: int) -> InputInstance | None:
    return (
        db.query(InputInstance).filter(InputInstance.id == input_instance_id).first()
    )


def get_fn_instances(db: Session, task_instance_id: int) -> list[FnInstance]:
    return (
        db.query(FnInstance)
        .filter(FnInstance.task_instance_id == task_instance_id)
        .order_by(FnInstance.id)
        .all()
    )


def get_field_instances(db: Session, fn_instance_id: int) -> list[FieldInstance]:
    return (
        db.query(FieldInstance)
        .filter(FieldInstance.fn_instance_id == fn_instance_id)
        .order_by(FieldInstance.id)
        .all()
    )


def get_input_instances(db: Session, field_instance_id: int) -> list[InputInstance]:
    return (
        db.query(InputInstance)
        .filter(InputInstance.field_instance_id == field_instance_id)
        .order_by(InputInstance.id)
        .all()
    )


def find_fn_instances_by_template(
    db: Session, task_instance_id: int, fn_template_id: int
) -> list[FnInstance]:
    return (
        db.query(FnInstance)
        .filter(FnInstance.task_instance_id == task_instance_id)
        .filter(FnInstance.fn_template_id == fn_template_id)
        .order_by(FnInstance.id)
        .all()
    )


def find_field_instances_by_template(
    db: Session, task_instance_id: int, field_template_id: int
) -> list[FieldInstance]:
    return (
        db.query(FieldInstance)
        .join(FnInstance, FieldInstance.fn_instance_id == FnInstance.id)
        .filter(FnInstance.task_instance_id == task_instance_id)
        .filter(FieldInstance.field_template_id == field_template_id)
        .order_by(FieldInstance.id)
        .all()
    )


def find_dynamic_input(
    db: Session, field_instance_id: int, conditional_action_id: int
) -> InputInstance | None:
    return (
        db.query(InputInstance)
        .filter(InputInstance.field_instance_id == field_instance_id)
        .filter(
            InputInstance.triggering_conditional_action_id == conditional_action_id
        )
        .first()
    )


def add_dynamic_input(
    db: Session,
    field_instance_id: int,
    input_template_id: int,
    conditional_action_id: int,
    created_by_id: int,
) -> InputInstance:
    """Insert a dynamic input inside its own savepoint.

    Raises ConflictError when the (field instance, action) pair already
    exists; the surrounding transaction stays usable.
    """
    ts = now()
    instance = InputInstance(
        input_template_id=input_template_id,
        field_instance_id=field_instance_id,
        value=None,
        is_dynamically_created=True,
        triggering_conditional_action_id=conditional_action_id,
        created_by_id=created_by_id,
        created_at=ts,
        updated_at=ts,
    )
    try:
        with db.begin_nested():
            db.add(instance)
    except IntegrityError as e:
        raise ConflictError(
            f"Field instance {field_instance_id} already has a dynamic input "
            f"from conditional action {conditional_action_id}"
        ) from e
    return instance


def close_instance(db: Session, instance, user_id: int) -> bool:
    """Set closed_at/closed_by on an instance. Returns False if already closed."""
    if instance.closed_at is not None:
        return False
    ts = now()
    instance.closed_at = ts
    instance.closed_by_id = user_id
    instance.updated_at = ts
    return True


def get_task_dropdown_ids(db: Session, task_instance_id: int) -> list[int]:
    rows = (
        db.query(TaskInstanceDropdownTemplate)
        .filter(TaskInstanceDropdownTemplate.task_instance_id == task_instance_id)
        .all()
    )
    return sorted(r.dropdown_template_id for r in rows)


def get_fn_dropdown_ids(db: Session, fn_instance_id: int) -> list[int]:
    rows = (
        db.query(FnInstanceDropdownTemplate)
        .filter(FnInstanceDropdownTemplate.fn_instance_id == fn_instance_id)
        .all()
    )
    return sorted(r.dropdown_template_id for r in rows)


def get_input_dropdown_ids(db: Session, input_instance_id: int) -> list[int]:
    rows = (
        db.query(InputInstanceDropdownTemplate)
        .filter(InputInstanceDropdownTemplate.input_instance_id == input_instance_id)
        .all()
    )
    return sorted(r.dropdown_template_id for r in rows)


def get_task_metadata_template_ids(db: Session, task_instance_id: int) -> list[int]:
    rows = (
        db.query(MetadataInstance)
        .filter(MetadataInstance.task_instance_id == task_instance_id)
        .all()
    )
    return sorted(r.metadata_template_id for r in rows)
