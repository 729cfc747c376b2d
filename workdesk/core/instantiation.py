"""Expansion of task templates into task instance trees.

The template graph is resolved completely before anything is written, so a
join row pointing at a missing template fails the call without touching the
database. The write phase then adds every row to one transaction and
commits once.
"""
import logging
import uuid
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from workdesk.core.errors import NotFoundError, ValidationError
from workdesk.core.models import ActivityType, EntityType, Priority
from workdesk.db import analytics, repository
from workdesk.db.repository import now
from workdesk.db.tables import (
    FieldInstance,
    FieldTemplate,
    FnInstance,
    FnInstanceDropdownTemplate,
    FnTemplate,
    InputInstance,
    InputInstanceDropdownTemplate,
    InputTemplate,
    MetadataInstance,
    TaskInstance,
    TaskInstanceDropdownTemplate,
    TaskTemplate,
)

logger = logging.getLogger(__name__)


@dataclass
class InputPlan:
    template: InputTemplate
    dropdown_ids: list[int] = field(default_factory=list)


@dataclass
class FieldPlan:
    template: FieldTemplate
    inputs: list[InputPlan] = field(default_factory=list)


@dataclass
class FnPlan:
    template: FnTemplate
    fields: list[FieldPlan] = field(default_factory=list)
    dropdown_ids: list[int] = field(default_factory=list)


@dataclass
class TaskPlan:
    template: TaskTemplate
    fns: list[FnPlan] = field(default_factory=list)
    dropdown_ids: list[int] = field(default_factory=list)
    metadata_ids: list[int] = field(default_factory=list)


def _dropdown_ids(db: Session, **owner) -> list[int]:
    return [d.id for d in repository.get_dropdown_templates_for(db, **owner)]


def _metadata_ids(db: Session, fn_plans: list[FnPlan], task_template_ids=()) -> list[int]:
    fn_ids = [fn.template.id for fn in fn_plans]
    field_ids = [f.template.id for fn in fn_plans for f in fn.fields]
    input_ids = [i.template.id for fn in fn_plans for f in fn.fields for i in f.inputs]
    return [
        m.id
        for m in repository.find_metadata_templates(
            db,
            task_template_ids=list(task_template_ids),
            fn_template_ids=fn_ids,
            field_template_ids=field_ids,
            input_template_ids=input_ids,
        )
    ]


def _write_metadata(db: Session, task_instance: TaskInstance, metadata_ids, ts: str):
    for metadata_id in metadata_ids:
        db.add(
            MetadataInstance(
                metadata_template_id=metadata_id,
                task_instance_id=task_instance.id,
                created_at=ts,
                updated_at=ts,
            )
        )


def _resolve_child(db: Session, model, child_id: int, parent_label: str):
    child = repository.get_template(db, model, child_id)
    if not child:
        raise NotFoundError(
            f"{repository.TEMPLATE_LABELS[model]} {child_id} referenced by "
            f"{parent_label} does not exist"
        )
    return child


def resolve_field_plan(db: Session, field_template: FieldTemplate) -> FieldPlan:
    plan = FieldPlan(template=field_template)
    for link in repository.get_child_links(db, FieldTemplate, field_template.id):
        input_template = _resolve_child(
            db,
            InputTemplate,
            link.input_template_id,
            f"field template {field_template.id}",
        )
        plan.inputs.append(
            InputPlan(
                template=input_template,
                dropdown_ids=_dropdown_ids(db, input_template_id=input_template.id),
            )
        )
    return plan


def resolve_fn_plan(db: Session, fn_template: FnTemplate) -> FnPlan:
    plan = FnPlan(
        template=fn_template,
        dropdown_ids=_dropdown_ids(db, fn_template_id=fn_template.id),
    )
    for link in repository.get_child_links(db, FnTemplate, fn_template.id):
        field_template = _resolve_child(
            db, FieldTemplate, link.field_template_id, f"fn template {fn_template.id}"
        )
        plan.fields.append(resolve_field_plan(db, field_template))
    return plan


def resolve_task_plan(db: Session, task_template_id: int) -> TaskPlan:
    template = repository.get_template_or_404(db, TaskTemplate, task_template_id)
    plan = TaskPlan(
        template=template,
        dropdown_ids=_dropdown_ids(db, task_template_id=template.id),
    )
    for link in repository.get_child_links(db, TaskTemplate, template.id):
        fn_template = _resolve_child(
            db, FnTemplate, link.fn_template_id, f"task template {template.id}"
        )
        plan.fns.append(resolve_fn_plan(db, fn_template))
    plan.metadata_ids = _metadata_ids(db, plan.fns, [template.id])
    return plan


def _active_user(db: Session, user_id: int, role: str):
    user = repository.get_user(db, user_id)
    if not user:
        raise NotFoundError(f"{role.capitalize()} user {user_id} not found")
    if user.disabled:
        raise ValidationError(f"{role.capitalize()} user {user_id} is disabled")
    return user


def _write_fn(
    db: Session,
    task_instance: TaskInstance,
    plan: FnPlan,
    created_by_id: int,
    assignee_id: int,
    previous_fn_instance_id: int | None = None,
) -> FnInstance:
    ts = now()
    fn_instance = FnInstance(
        fn_template_id=plan.template.id,
        task_instance_id=task_instance.id,
        previous_fn_instance_id=previous_fn_instance_id,
        created_by_id=created_by_id,
        assignee_id=assignee_id,
        created_at=ts,
        updated_at=ts,
    )
    db.add(fn_instance)
    db.flush()
    for dropdown_id in plan.dropdown_ids:
        db.add(
            FnInstanceDropdownTemplate(
                fn_instance_id=fn_instance.id, dropdown_template_id=dropdown_id
            )
        )

    for field_plan in plan.fields:
        field_instance = FieldInstance(
            field_template_id=field_plan.template.id,
            fn_instance_id=fn_instance.id,
            created_by_id=created_by_id,
            created_at=ts,
            updated_at=ts,
        )
        db.add(field_instance)
        db.flush()
        for input_plan in field_plan.inputs:
            input_instance = InputInstance(
                input_template_id=input_plan.template.id,
                field_instance_id=field_instance.id,
                value=None,
                is_dynamically_created=False,
                created_by_id=created_by_id,
                created_at=ts,
                updated_at=ts,
            )
            db.add(input_instance)
            if input_plan.dropdown_ids:
                db.flush()
                for dropdown_id in input_plan.dropdown_ids:
                    db.add(
                        InputInstanceDropdownTemplate(
                            input_instance_id=input_instance.id,
                            dropdown_template_id=dropdown_id,
                        )
                    )
    return fn_instance


def instantiate_task(
    db: Session,
    task_template_id: int,
    customer_id: int,
    assignee_id: int,
    created_by_id: int,
    priority: str = Priority.NORMAL.value,
) -> TaskInstance:
    customer = repository.get_customer(db, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    if customer.disabled:
        raise ValidationError(f"Customer {customer_id} is disabled")
    _active_user(db, assignee_id, "assignee")
    _active_user(db, created_by_id, "creator")

    plan = resolve_task_plan(db, task_template_id)

    try:
        ts = now()
        task_instance = TaskInstance(
            task_template_id=plan.template.id,
            code=f"TSK-{uuid.uuid4().hex[:10].upper()}",
            customer_id=customer_id,
            priority=priority,
            created_by_id=created_by_id,
            assignee_id=assignee_id,
            is_archived=False,
            created_at=ts,
            updated_at=ts,
        )
        db.add(task_instance)
        db.flush()
        for dropdown_id in plan.dropdown_ids:
            db.add(
                TaskInstanceDropdownTemplate(
                    task_instance_id=task_instance.id,
                    dropdown_template_id=dropdown_id,
                )
            )
        for fn_plan in plan.fns:
            _write_fn(db, task_instance, fn_plan, created_by_id, assignee_id)
        _write_metadata(db, task_instance, plan.metadata_ids, ts)

        analytics.record_activity(
            db,
            user_id=created_by_id,
            activity_type=ActivityType.CREATE.value,
            entity_type=EntityType.TASK.value,
            entity_id=task_instance.id,
            description=f"Opened task '{plan.template.name}' for customer {customer_id}",
            details={"task_template_id": plan.template.id, "code": task_instance.code},
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(task_instance)
    logger.info(
        "Instantiated task template %s as task instance %s (%s fn instances)",
        plan.template.id,
        task_instance.id,
        len(plan.fns),
    )
    return task_instance


def instantiate_follow_up(
    db: Session,
    previous: FnInstance,
    fn_template_id: int,
    created_by_id: int,
) -> FnInstance | None:
    """Create the follow-up fn instance of ``previous`` in the caller's
    transaction. Returns None if the task already holds an instance of that
    template.
    """
    task_instance = db.get(TaskInstance, previous.task_instance_id)
    existing = (
        db.query(FnInstance)
        .filter(FnInstance.task_instance_id == task_instance.id)
        .filter(FnInstance.fn_template_id == fn_template_id)
        .first()
    )
    if existing:
        logger.info(
            "Task instance %s already has fn template %s; no follow-up created",
            task_instance.id,
            fn_template_id,
        )
        return None

    fn_template = repository.get_template(db, FnTemplate, fn_template_id)
    if not fn_template:
        raise NotFoundError(
            f"Follow-up fn template {fn_template_id} of fn instance "
            f"{previous.id} does not exist"
        )
    plan = resolve_fn_plan(db, fn_template)
    fn_instance = _write_fn(
        db,
        task_instance,
        plan,
        created_by_id,
        previous.assignee_id,
        previous_fn_instance_id=previous.id,
    )
    present = {
        m.metadata_template_id
        for m in db.query(MetadataInstance).filter(
            MetadataInstance.task_instance_id == task_instance.id
        )
    }
    _write_metadata(
        db,
        task_instance,
        [m for m in _metadata_ids(db, [plan]) if m not in present],
        now(),
    )
    logger.info(
        "Created follow-up fn instance %s (template %s) after fn instance %s",
        fn_instance.id,
        fn_template_id,
        previous.id,
    )
    return fn_instance
