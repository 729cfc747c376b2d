import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from workdesk.api.auth import verify_api_key
from workdesk.api.schemas import (
    ConditionalActionCreate,
    ConditionalActionResponse,
    DropdownItemCreate,
    DropdownItemResponse,
    DropdownTemplateCreate,
    DropdownTemplateResponse,
    FieldNode,
    FieldTemplateCreate,
    FieldTemplateResponse,
    FieldTemplateUpdate,
    FnNode,
    FnTemplateCreate,
    FnTemplateResponse,
    FnTemplateUpdate,
    InputNode,
    InputTemplateCreate,
    InputTemplateResponse,
    InputTemplateUpdate,
    MetadataTemplateCreate,
    MetadataTemplateResponse,
    TaskTemplateCreate,
    TaskTemplateGraph,
    TaskTemplateResponse,
    TaskTemplateUpdate,
    TemplateLink,
)
from workdesk.core.errors import ConfigurationError
from workdesk.core.instantiation import resolve_task_plan
from workdesk.core.models import ConditionalActionType
from workdesk.core.targets import (
    TargetField,
    TargetFn,
    TargetInput,
    TargetTask,
    check_target,
    target_columns,
)
from workdesk.db import repository
from workdesk.db.database import get_db
from workdesk.db.tables import FieldTemplate, FnTemplate, InputTemplate, TaskTemplate

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])

# Template columns an update may set back to null.
CLEARABLE_FIELDS = {
    "description",
    "next_follow_up_fn_template_id",
    "condition",
    "comparison_value",
}


def _check_follow_up(db: Session, fields: dict):
    follow_up_id = fields.get("next_follow_up_fn_template_id")
    if follow_up_id is not None:
        repository.get_template_or_404(db, FnTemplate, follow_up_id)


def _create(db: Session, model, body):
    fields = body.model_dump(mode="json")
    _check_follow_up(db, fields)
    template = repository.create_template(db, model, **fields)
    logger.info(
        "Created %s %s", repository.TEMPLATE_LABELS[model].lower(), template.id
    )
    return template


def _update(db: Session, model, template_id: int, body):
    fields = {
        k: v
        for k, v in body.model_dump(mode="json", exclude_unset=True).items()
        if v is not None or k in CLEARABLE_FIELDS
    }
    _check_follow_up(db, fields)
    return repository.update_template(db, model, template_id, **fields)


def _delete(db: Session, model, template_id: int):
    repository.delete_template(db, model, template_id)
    logger.info(
        "Deleted %s %s", repository.TEMPLATE_LABELS[model].lower(), template_id
    )


def _link_response(model, link) -> TemplateLink:
    _, _, child_col, _ = repository.TEMPLATE_LINKS[model]
    return TemplateLink(child_id=getattr(link, child_col), position=link.position)


def _attach(db: Session, model, template_id: int, body: TemplateLink):
    link = repository.link_templates(
        db, model, template_id, body.child_id, body.position
    )
    return _link_response(model, link)


def _children(db: Session, model, template_id: int):
    repository.get_template_or_404(db, model, template_id)
    return [
        _link_response(model, link)
        for link in repository.get_child_links(db, model, template_id)
    ]


# ── Task templates ─────────────────────────────────────────────────────────


@router.post("/task-templates", response_model=TaskTemplateResponse, status_code=201)
def create_task_template(body: TaskTemplateCreate, db: Session = Depends(get_db)):
    return _create(db, TaskTemplate, body)


@router.get("/task-templates", response_model=list[TaskTemplateResponse])
def list_task_templates(db: Session = Depends(get_db)):
    return repository.list_templates(db, TaskTemplate)


@router.get("/task-templates/{template_id}", response_model=TaskTemplateResponse)
def get_task_template(template_id: int, db: Session = Depends(get_db)):
    return repository.get_template_or_404(db, TaskTemplate, template_id)


@router.patch("/task-templates/{template_id}", response_model=TaskTemplateResponse)
def update_task_template(
    template_id: int, body: TaskTemplateUpdate, db: Session = Depends(get_db)
):
    return _update(db, TaskTemplate, template_id, body)


@router.delete("/task-templates/{template_id}", status_code=204)
def delete_task_template(template_id: int, db: Session = Depends(get_db)):
    _delete(db, TaskTemplate, template_id)


@router.post(
    "/task-templates/{template_id}/fn-templates",
    response_model=TemplateLink,
    status_code=201,
)
def attach_fn_template(
    template_id: int, body: TemplateLink, db: Session = Depends(get_db)
):
    return _attach(db, TaskTemplate, template_id, body)


@router.get(
    "/task-templates/{template_id}/fn-templates", response_model=list[TemplateLink]
)
def list_task_template_fns(template_id: int, db: Session = Depends(get_db)):
    return _children(db, TaskTemplate, template_id)


@router.delete("/task-templates/{template_id}/fn-templates/{child_id}", status_code=204)
def detach_fn_template(template_id: int, child_id: int, db: Session = Depends(get_db)):
    repository.unlink_templates(db, TaskTemplate, template_id, child_id)


# ── Fn templates ───────────────────────────────────────────────────────────


@router.post("/fn-templates", response_model=FnTemplateResponse, status_code=201)
def create_fn_template(body: FnTemplateCreate, db: Session = Depends(get_db)):
    return _create(db, FnTemplate, body)


@router.get("/fn-templates", response_model=list[FnTemplateResponse])
def list_fn_templates(db: Session = Depends(get_db)):
    return repository.list_templates(db, FnTemplate)


@router.get("/fn-templates/{template_id}", response_model=FnTemplateResponse)
def get_fn_template(template_id: int, db: Session = Depends(get_db)):
    return repository.get_template_or_404(db, FnTemplate, template_id)


@router.patch("/fn-templates/{template_id}", response_model=FnTemplateResponse)
def update_fn_template(
    template_id: int, body: FnTemplateUpdate, db: Session = Depends(get_db)
):
    return _update(db, FnTemplate, template_id, body)


@router.delete("/fn-templates/{template_id}", status_code=204)
def delete_fn_template(template_id: int, db: Session = Depends(get_db)):
    _delete(db, FnTemplate, template_id)


@router.post(
    "/fn-templates/{template_id}/field-templates",
    response_model=TemplateLink,
    status_code=201,
)
def attach_field_template(
    template_id: int, body: TemplateLink, db: Session = Depends(get_db)
):
    return _attach(db, FnTemplate, template_id, body)


@router.get(
    "/fn-templates/{template_id}/field-templates", response_model=list[TemplateLink]
)
def list_fn_template_fields(template_id: int, db: Session = Depends(get_db)):
    return _children(db, FnTemplate, template_id)


@router.delete("/fn-templates/{template_id}/field-templates/{child_id}", status_code=204)
def detach_field_template(
    template_id: int, child_id: int, db: Session = Depends(get_db)
):
    repository.unlink_templates(db, FnTemplate, template_id, child_id)


# ── Field templates ────────────────────────────────────────────────────────


@router.post("/field-templates", response_model=FieldTemplateResponse, status_code=201)
def create_field_template(body: FieldTemplateCreate, db: Session = Depends(get_db)):
    return _create(db, FieldTemplate, body)


@router.get("/field-templates", response_model=list[FieldTemplateResponse])
def list_field_templates(db: Session = Depends(get_db)):
    return repository.list_templates(db, FieldTemplate)


@router.get("/field-templates/{template_id}", response_model=FieldTemplateResponse)
def get_field_template(template_id: int, db: Session = Depends(get_db)):
    return repository.get_template_or_404(db, FieldTemplate, template_id)


@router.patch("/field-templates/{template_id}", response_model=FieldTemplateResponse)
def update_field_template(
    template_id: int, body: FieldTemplateUpdate, db: Session = Depends(get_db)
):
    return _update(db, FieldTemplate, template_id, body)


@router.delete("/field-templates/{template_id}", status_code=204)
def delete_field_template(template_id: int, db: Session = Depends(get_db)):
    _delete(db, FieldTemplate, template_id)


@router.post(
    "/field-templates/{template_id}/input-templates",
    response_model=TemplateLink,
    status_code=201,
)
def attach_input_template(
    template_id: int, body: TemplateLink, db: Session = Depends(get_db)
):
    return _attach(db, FieldTemplate, template_id, body)


@router.get(
    "/field-templates/{template_id}/input-templates",
    response_model=list[TemplateLink],
)
def list_field_template_inputs(template_id: int, db: Session = Depends(get_db)):
    return _children(db, FieldTemplate, template_id)


@router.delete(
    "/field-templates/{template_id}/input-templates/{child_id}", status_code=204
)
def detach_input_template(
    template_id: int, child_id: int, db: Session = Depends(get_db)
):
    repository.unlink_templates(db, FieldTemplate, template_id, child_id)


# ── Input templates ────────────────────────────────────────────────────────


@router.post("/input-templates", response_model=InputTemplateResponse, status_code=201)
def create_input_template(body: InputTemplateCreate, db: Session = Depends(get_db)):
    return _create(db, InputTemplate, body)


@router.get("/input-templates", response_model=list[InputTemplateResponse])
def list_input_templates(db: Session = Depends(get_db)):
    return repository.list_templates(db, InputTemplate)


@router.get("/input-templates/{template_id}", response_model=InputTemplateResponse)
def get_input_template(template_id: int, db: Session = Depends(get_db)):
    return repository.get_template_or_404(db, InputTemplate, template_id)


@router.patch("/input-templates/{template_id}", response_model=InputTemplateResponse)
def update_input_template(
    template_id: int, body: InputTemplateUpdate, db: Session = Depends(get_db)
):
    return _update(db, InputTemplate, template_id, body)


@router.delete("/input-templates/{template_id}", status_code=204)
def delete_input_template(template_id: int, db: Session = Depends(get_db)):
    _delete(db, InputTemplate, template_id)


@router.get("/task-templates/{template_id}/graph", response_model=TaskTemplateGraph)
def get_task_template_graph(template_id: int, db: Session = Depends(get_db)):
    """The fully resolved template tree a new task instance would copy."""
    plan = resolve_task_plan(db, template_id)
    return TaskTemplateGraph(
        template=TaskTemplateResponse.model_validate(plan.template),
        dropdown_template_ids=plan.dropdown_ids,
        metadata_template_ids=plan.metadata_ids,
        fns=[
            FnNode(
                template=FnTemplateResponse.model_validate(fn.template),
                dropdown_template_ids=fn.dropdown_ids,
                fields=[
                    FieldNode(
                        template=FieldTemplateResponse.model_validate(f.template),
                        inputs=[
                            InputNode(
                                template=InputTemplateResponse.model_validate(
                                    i.template
                                ),
                                dropdown_template_ids=i.dropdown_ids,
                            )
                            for i in f.inputs
                        ],
                    )
                    for f in fn.fields
                ],
            )
            for fn in plan.fns
        ],
    )


# ── Dropdowns ──────────────────────────────────────────────────────────────


@router.post("/dropdown-items", response_model=DropdownItemResponse, status_code=201)
def create_dropdown_item(body: DropdownItemCreate, db: Session = Depends(get_db)):
    return repository.create_dropdown_item(db, body.name)


@router.get("/dropdown-items", response_model=list[DropdownItemResponse])
def list_dropdown_items(db: Session = Depends(get_db)):
    return repository.list_dropdown_items(db)


@router.post(
    "/dropdown-templates", response_model=DropdownTemplateResponse, status_code=201
)
def create_dropdown_template(
    body: DropdownTemplateCreate, db: Session = Depends(get_db)
):
    return repository.create_dropdown_template(db, **body.model_dump())


@router.get("/dropdown-templates", response_model=list[DropdownTemplateResponse])
def list_dropdown_templates(
    task_template_id: int | None = None,
    fn_template_id: int | None = None,
    input_template_id: int | None = None,
    db: Session = Depends(get_db),
):
    return repository.get_dropdown_templates_for(
        db,
        task_template_id=task_template_id,
        fn_template_id=fn_template_id,
        input_template_id=input_template_id,
    )


# ── Metadata templates ─────────────────────────────────────────────────────


@router.post(
    "/metadata-templates", response_model=MetadataTemplateResponse, status_code=201
)
def create_metadata_template(
    body: MetadataTemplateCreate, db: Session = Depends(get_db)
):
    return repository.create_metadata_template(db, **body.model_dump())


@router.get("/metadata-templates", response_model=list[MetadataTemplateResponse])
def list_metadata_templates(
    task_template_id: int | None = None,
    fn_template_id: int | None = None,
    field_template_id: int | None = None,
    input_template_id: int | None = None,
    db: Session = Depends(get_db),
):
    return repository.list_metadata_templates(
        db,
        task_template_id=task_template_id,
        fn_template_id=fn_template_id,
        field_template_id=field_template_id,
        input_template_id=input_template_id,
    )


@router.get(
    "/metadata-templates/{metadata_template_id}",
    response_model=MetadataTemplateResponse,
)
def get_metadata_template(metadata_template_id: int, db: Session = Depends(get_db)):
    metadata_template = repository.get_metadata_template(db, metadata_template_id)
    if not metadata_template:
        raise HTTPException(
            status_code=404,
            detail=f"Metadata template {metadata_template_id} not found",
        )
    return metadata_template


@router.delete("/metadata-templates/{metadata_template_id}", status_code=204)
def delete_metadata_template(metadata_template_id: int, db: Session = Depends(get_db)):
    repository.delete_metadata_template(db, metadata_template_id)


# ── Conditional actions ────────────────────────────────────────────────────

TARGET_KINDS = {
    TargetTask: "task",
    TargetFn: "fn",
    TargetField: "field",
    TargetInput: "input",
}


def _target_dict(action) -> dict | None:
    for variant, kind in TARGET_KINDS.items():
        target_id = getattr(action, variant.column)
        if target_id is not None:
            return {"kind": kind, variant.column.removeprefix("targeted_"): target_id}
    return None


def _action_response(db: Session, action) -> ConditionalActionResponse:
    return ConditionalActionResponse(
        id=action.id,
        input_template_id=action.input_template_id,
        name=action.name,
        type=action.type,
        description=action.description,
        target=_target_dict(action),
        notify_user_ids=repository.get_notify_user_ids(db, action.id),
        created_at=action.created_at,
    )


@router.post(
    "/conditional-actions", response_model=ConditionalActionResponse, status_code=201
)
def create_conditional_action(
    body: ConditionalActionCreate, db: Session = Depends(get_db)
):
    target = body.target.to_target() if body.target is not None else None
    action_type = check_target(body.type.value, target)
    if action_type == ConditionalActionType.NOTIFY_USERS:
        if not body.notify_user_ids:
            raise ConfigurationError("NOTIFY_USERS needs at least one user to notify")
    elif body.notify_user_ids:
        raise ConfigurationError(
            f"{action_type.value} does not take users to notify"
        )

    action = repository.create_conditional_action(
        db,
        input_template_id=body.input_template_id,
        name=body.name,
        action_type=action_type.value,
        description=body.description,
        targets=target_columns(target),
        notify_user_ids=body.notify_user_ids,
    )
    logger.info(
        "Created conditional action %s (%s) on input template %s",
        action.id,
        action.type,
        action.input_template_id,
    )
    return _action_response(db, action)


@router.get(
    "/conditional-actions/{action_id}", response_model=ConditionalActionResponse
)
def get_conditional_action(action_id: int, db: Session = Depends(get_db)):
    action = repository.get_conditional_action(db, action_id)
    if not action:
        raise HTTPException(
            status_code=404, detail=f"Conditional action {action_id} not found"
        )
    return _action_response(db, action)


@router.delete("/conditional-actions/{action_id}", status_code=204)
def delete_conditional_action(action_id: int, db: Session = Depends(get_db)):
    repository.delete_conditional_action(db, action_id)


@router.get(
    "/input-templates/{template_id}/conditional-actions",
    response_model=list[ConditionalActionResponse],
)
def list_conditional_actions(template_id: int, db: Session = Depends(get_db)):
    repository.get_template_or_404(db, InputTemplate, template_id)
    return [
        _action_response(db, a)
        for a in repository.get_conditional_actions_for_input(db, template_id)
    ]
