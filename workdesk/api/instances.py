import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from workdesk.api.auth import current_user_id, verify_api_key
from workdesk.api.schemas import (
    EvaluationResponse,
    FieldCloseResponse,
    FieldInstanceResponse,
    FnCloseRequest,
    FnCloseResponse,
    FnInstanceResponse,
    InputInstanceResponse,
    InputValueWrite,
    InputValueWriteResponse,
    TaskCloseResponse,
    TaskInstanceCreate,
    TaskInstanceResponse,
)
from workdesk.core import workflow
from workdesk.core.evaluator import RuleEvaluator
from workdesk.core.instantiation import instantiate_task
from workdesk.db import instances
from workdesk.db.database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])

_evaluator = RuleEvaluator()


def get_evaluator() -> RuleEvaluator:
    return _evaluator


# ── Views ──────────────────────────────────────────────────────────────────


def input_view(db: Session, input_instance) -> InputInstanceResponse:
    return InputInstanceResponse.model_validate(input_instance).model_copy(
        update={
            "dropdown_template_ids": instances.get_input_dropdown_ids(
                db, input_instance.id
            )
        }
    )


def field_view(db: Session, field_instance) -> FieldInstanceResponse:
    return FieldInstanceResponse.model_validate(field_instance).model_copy(
        update={
            "inputs": [
                input_view(db, i)
                for i in instances.get_input_instances(db, field_instance.id)
            ]
        }
    )


def fn_view(db: Session, fn_instance) -> FnInstanceResponse:
    return FnInstanceResponse.model_validate(fn_instance).model_copy(
        update={
            "dropdown_template_ids": instances.get_fn_dropdown_ids(db, fn_instance.id),
            "fields": [
                field_view(db, f)
                for f in instances.get_field_instances(db, fn_instance.id)
            ],
        }
    )


def task_view(db: Session, task_instance, with_tree: bool = True) -> TaskInstanceResponse:
    update = {
        "dropdown_template_ids": instances.get_task_dropdown_ids(db, task_instance.id),
        "metadata_template_ids": instances.get_task_metadata_template_ids(
            db, task_instance.id
        ),
    }
    if with_tree:
        update["fns"] = [
            fn_view(db, f) for f in instances.get_fn_instances(db, task_instance.id)
        ]
    return TaskInstanceResponse.model_validate(task_instance).model_copy(update=update)


# ── Task instances ─────────────────────────────────────────────────────────


@router.post("/task-instances", response_model=TaskInstanceResponse, status_code=201)
def create_task_instance(
    body: TaskInstanceCreate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    task_instance = instantiate_task(
        db,
        task_template_id=body.task_template_id,
        customer_id=body.customer_id,
        assignee_id=body.assignee_id,
        created_by_id=user_id,
        priority=body.priority.value,
    )
    return task_view(db, task_instance)


@router.get("/task-instances", response_model=list[TaskInstanceResponse])
def list_task_instances(
    customer_id: int | None = None,
    assignee_id: int | None = None,
    open_only: bool = False,
    include_archived: bool = False,
    db: Session = Depends(get_db),
):
    rows = instances.list_task_instances(
        db,
        customer_id=customer_id,
        assignee_id=assignee_id,
        open_only=open_only,
        include_archived=include_archived,
    )
    return [task_view(db, t, with_tree=False) for t in rows]


@router.get("/task-instances/{task_instance_id}", response_model=TaskInstanceResponse)
def get_task_instance(task_instance_id: int, db: Session = Depends(get_db)):
    task_instance = instances.get_task_instance(db, task_instance_id)
    if not task_instance:
        raise HTTPException(
            status_code=404, detail=f"Task instance {task_instance_id} not found"
        )
    return task_view(db, task_instance)


@router.post(
    "/task-instances/{task_instance_id}/close", response_model=TaskCloseResponse
)
def close_task_instance(
    task_instance_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    task_instance, closed = workflow.close_task_instance(db, task_instance_id, user_id)
    return TaskCloseResponse(
        task_instance=task_view(db, task_instance, with_tree=False), closed=closed
    )


@router.post(
    "/task-instances/{task_instance_id}/archive", response_model=TaskInstanceResponse
)
def archive_task_instance(
    task_instance_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    task_instance = workflow.archive_task_instance(db, task_instance_id, user_id)
    return task_view(db, task_instance, with_tree=False)


# ── Fn / field / input instances ───────────────────────────────────────────


@router.get("/fn-instances/{fn_instance_id}", response_model=FnInstanceResponse)
def get_fn_instance(fn_instance_id: int, db: Session = Depends(get_db)):
    fn_instance = instances.get_fn_instance(db, fn_instance_id)
    if not fn_instance:
        raise HTTPException(
            status_code=404, detail=f"Fn instance {fn_instance_id} not found"
        )
    return fn_view(db, fn_instance)


@router.post("/fn-instances/{fn_instance_id}/close", response_model=FnCloseResponse)
def close_fn_instance(
    fn_instance_id: int,
    body: FnCloseRequest | None = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    follow_up_id = body.follow_up_fn_template_id if body else None
    fn_instance, closed, follow_up = workflow.close_fn_instance(
        db, fn_instance_id, user_id, follow_up_id
    )
    return FnCloseResponse(
        fn_instance=fn_view(db, fn_instance),
        closed=closed,
        follow_up=fn_view(db, follow_up) if follow_up is not None else None,
    )


@router.post(
    "/field-instances/{field_instance_id}/close", response_model=FieldCloseResponse
)
def close_field_instance(
    field_instance_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    field_instance, closed = workflow.close_field_instance(
        db, field_instance_id, user_id
    )
    return FieldCloseResponse(field_instance=field_view(db, field_instance), closed=closed)


@router.get(
    "/input-instances/{input_instance_id}", response_model=InputInstanceResponse
)
def get_input_instance(input_instance_id: int, db: Session = Depends(get_db)):
    input_instance = instances.get_input_instance(db, input_instance_id)
    if not input_instance:
        raise HTTPException(
            status_code=404, detail=f"Input instance {input_instance_id} not found"
        )
    return input_view(db, input_instance)


@router.put(
    "/input-instances/{input_instance_id}/value",
    response_model=InputValueWriteResponse,
)
def write_input_value(
    input_instance_id: int,
    body: InputValueWrite,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
    evaluator: RuleEvaluator = Depends(get_evaluator),
):
    input_instance, result = workflow.write_input_value(
        db, evaluator, input_instance_id, body.value, user_id, body.remarks
    )
    if result.failures:
        logger.warning(
            "%s conditional actions failed for input instance %s",
            len(result.failures),
            input_instance_id,
        )
    return InputValueWriteResponse(
        input=input_view(db, input_instance),
        evaluation=EvaluationResponse.model_validate(result, from_attributes=True),
    )
