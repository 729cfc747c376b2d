from datetime import datetime, timezone

from sqlalchemy import or_
from sqlalchemy.orm import Session

from workdesk.core.errors import ConflictError, NotFoundError
from workdesk.db.tables import (
    ConditionalAction,
    ConditionalActionUser,
    Customer,
    DropdownItem,
    DropdownTemplate,
    FieldInstance,
    FieldTemplate,
    FieldTemplateInputTemplate,
    FnInstance,
    FnTemplate,
    FnTemplateFieldTemplate,
    InputInstance,
    InputTemplate,
    MetadataInstance,
    MetadataTemplate,
    ParentCompany,
    TaskInstance,
    TaskTemplate,
    TaskTemplateFnTemplate,
    User,
    UserDepartment,
    UserRole,
)


def now() -> str:
    return datetime.now(timezone.utc).isoformat()


# ── Users & customers ──────────────────────────────────────────────────────


def create_user(
    db: Session,
    name: str,
    email: str,
    phone: str | None = None,
    is_admin: bool = False,
    roles: list[str] | None = None,
    departments: list[str] | None = None,
) -> User:
    if db.query(User).filter(User.email == email).first():
        raise ConflictError(f"User with email '{email}' already exists")

    ts = now()
    user = User(
        name=name,
        email=email,
        phone=phone,
        is_admin=is_admin,
        disabled=False,
        created_at=ts,
        updated_at=ts,
    )
    db.add(user)
    db.flush()
    for role in set(roles or []):
        db.add(UserRole(user_id=user.id, role=role))
    for department in set(departments or []):
        db.add(UserDepartment(user_id=user.id, department=department))
    db.commit()
    db.refresh(user)
    return user


def get_user(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def list_users(db: Session, include_disabled: bool = False) -> list[User]:
    query = db.query(User)
    if not include_disabled:
        query = query.filter(User.disabled.is_(False))
    return query.order_by(User.id).all()


def get_user_roles(db: Session, user_id: int) -> list[str]:
    rows = db.query(UserRole).filter(UserRole.user_id == user_id).all()
    return sorted(r.role for r in rows)


def get_user_departments(db: Session, user_id: int) -> list[str]:
    rows = db.query(UserDepartment).filter(UserDepartment.user_id == user_id).all()
    return sorted(r.department for r in rows)


def disable_user(db: Session, user_id: int) -> User:
    user = get_user(db, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    user.disabled = True
    user.updated_at = now()
    db.commit()
    db.refresh(user)
    return user


def create_parent_company(db: Session, **fields) -> ParentCompany:
    ts = now()
    company = ParentCompany(created_at=ts, updated_at=ts, **fields)
    db.add(company)
    db.commit()
    db.refresh(company)
    return company


def get_parent_company(db: Session, company_id: int) -> ParentCompany | None:
    return db.query(ParentCompany).filter(ParentCompany.id == company_id).first()


def list_parent_companies(db: Session) -> list[ParentCompany]:
    return db.query(ParentCompany).order_by(ParentCompany.id).all()


def create_customer(db: Session, **fields) -> Customer:
    company_id = fields.get("parent_company_id")
    if company_id is not None and not get_parent_company(db, company_id):
        raise NotFoundError(f"Parent company {company_id} not found")
    ts = now()
    customer = Customer(disabled=False, created_at=ts, updated_at=ts, **fields)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer


def get_customer(db: Session, customer_id: int) -> Customer | None:
    return db.query(Customer).filter(Customer.id == customer_id).first()


def list_customers(
    db: Session,
    include_disabled: bool = False,
    parent_company_id: int | None = None,
) -> list[Customer]:
    query = db.query(Customer)
    if parent_company_id is not None:
        query = query.filter(Customer.parent_company_id == parent_company_id)
    if not include_disabled:
        query = query.filter(Customer.disabled.is_(False))
    return query.order_by(Customer.id).all()


def disable_customer(db: Session, customer_id: int) -> Customer:
    customer = get_customer(db, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    customer.disabled = True
    customer.updated_at = now()
    db.commit()
    db.refresh(customer)
    return customer


# ── Templates ──────────────────────────────────────────────────────────────

TEMPLATE_LABELS = {
    TaskTemplate: "Task template",
    FnTemplate: "Fn template",
    FieldTemplate: "Field template",
    InputTemplate: "Input template",
}

METADATA_OWNER_COLUMNS = {
    TaskTemplate: MetadataTemplate.task_template_id,
    FnTemplate: MetadataTemplate.fn_template_id,
    FieldTemplate: MetadataTemplate.field_template_id,
    InputTemplate: MetadataTemplate.input_template_id,
}


def create_template(db: Session, model, **fields):
    ts = now()
    template = model(created_at=ts, updated_at=ts, **fields)
    db.add(template)
    db.commit()
    db.refresh(template)
    return template


def get_template(db: Session, model, template_id: int):
    return db.query(model).filter(model.id == template_id).first()


def get_template_or_404(db: Session, model, template_id: int):
    template = get_template(db, model, template_id)
    if not template:
        raise NotFoundError(f"{TEMPLATE_LABELS[model]} {template_id} not found")
    return template


def list_templates(db: Session, model) -> list:
    return db.query(model).order_by(model.id).all()


def update_template(db: Session, model, template_id: int, **fields):
    template = get_template_or_404(db, model, template_id)
    for key, value in fields.items():
        setattr(template, key, value)
    template.updated_at = now()
    db.commit()
    db.refresh(template)
    return template


def _template_references(db: Session, model, template_id: int) -> list[str]:
    """Describe what still points at a template; empty means safe to delete."""
    refs = []
    if model is TaskTemplate:
        if db.query(TaskTemplateFnTemplate).filter(
            TaskTemplateFnTemplate.task_template_id == template_id
        ).first():
            refs.append("fn template links")
        if db.query(TaskInstance).filter(
            TaskInstance.task_template_id == template_id
        ).first():
            refs.append("task instances")
    elif model is FnTemplate:
        if db.query(TaskTemplateFnTemplate).filter(
            TaskTemplateFnTemplate.fn_template_id == template_id
        ).first():
            refs.append("task templates")
        if db.query(FnTemplateFieldTemplate).filter(
            FnTemplateFieldTemplate.fn_template_id == template_id
        ).first():
            refs.append("field template links")
        if db.query(FnTemplate).filter(
            FnTemplate.next_follow_up_fn_template_id == template_id
        ).first():
            refs.append("follow-up pointers")
        if db.query(FnInstance).filter(FnInstance.fn_template_id == template_id).first():
            refs.append("fn instances")
    elif model is FieldTemplate:
        if db.query(FnTemplateFieldTemplate).filter(
            FnTemplateFieldTemplate.field_template_id == template_id
        ).first():
            refs.append("fn templates")
        if db.query(FieldTemplateInputTemplate).filter(
            FieldTemplateInputTemplate.field_template_id == template_id
        ).first():
            refs.append("input template links")
        if db.query(FieldInstance).filter(
            FieldInstance.field_template_id == template_id
        ).first():
            refs.append("field instances")
    elif model is InputTemplate:
        if db.query(FieldTemplateInputTemplate).filter(
            FieldTemplateInputTemplate.input_template_id == template_id
        ).first():
            refs.append("field templates")
        if db.query(ConditionalAction).filter(
            or_(
                ConditionalAction.input_template_id == template_id,
                ConditionalAction.targeted_input_template_id == template_id,
            )
        ).first():
            refs.append("conditional actions")
        if db.query(InputInstance).filter(
            InputInstance.input_template_id == template_id
        ).first():
            refs.append("input instances")
    if db.query(MetadataTemplate).filter(
        METADATA_OWNER_COLUMNS[model] == template_id
    ).first():
        refs.append("metadata templates")
    return refs


def delete_template(db: Session, model, template_id: int):
    template = get_template_or_404(db, model, template_id)
    refs = _template_references(db, model, template_id)
    if refs:
        raise ConflictError(
            f"{TEMPLATE_LABELS[model]} {template_id} is still referenced by "
            + ", ".join(refs)
        )
    dropdown_column = {
        TaskTemplate: DropdownTemplate.task_template_id,
        FnTemplate: DropdownTemplate.fn_template_id,
        InputTemplate: DropdownTemplate.input_template_id,
    }.get(model)
    if dropdown_column is not None:
        db.query(DropdownTemplate).filter(dropdown_column == template_id).delete(
            synchronize_session=False
        )
    db.delete(template)
    db.commit()


# ── Template joins ─────────────────────────────────────────────────────────

# parent model -> (join model, parent column, child column, child model)
TEMPLATE_LINKS = {
    TaskTemplate: (
        TaskTemplateFnTemplate,
        "task_template_id",
        "fn_template_id",
        FnTemplate,
    ),
    FnTemplate: (
        FnTemplateFieldTemplate,
        "fn_template_id",
        "field_template_id",
        FieldTemplate,
    ),
    FieldTemplate: (
        FieldTemplateInputTemplate,
        "field_template_id",
        "input_template_id",
        InputTemplate,
    ),
}


def link_templates(
    db: Session, parent_model, parent_id: int, child_id: int, position: int | None = None
):
    join_model, parent_col, child_col, child_model = TEMPLATE_LINKS[parent_model]
    get_template_or_404(db, parent_model, parent_id)
    get_template_or_404(db, child_model, child_id)

    existing = (
        db.query(join_model)
        .filter(getattr(join_model, parent_col) == parent_id)
        .filter(getattr(join_model, child_col) == child_id)
        .first()
    )
    if existing:
        raise ConflictError(
            f"{TEMPLATE_LABELS[child_model]} {child_id} is already attached to "
            f"{TEMPLATE_LABELS[parent_model].lower()} {parent_id}"
        )

    if position is None:
        position = (
            db.query(join_model)
            .filter(getattr(join_model, parent_col) == parent_id)
            .count()
        )
    link = join_model(**{parent_col: parent_id, child_col: child_id, "position": position})
    db.add(link)
    db.commit()
    return link


def unlink_templates(db: Session, parent_model, parent_id: int, child_id: int):
    join_model, parent_col, child_col, child_model = TEMPLATE_LINKS[parent_model]
    deleted = (
        db.query(join_model)
        .filter(getattr(join_model, parent_col) == parent_id)
        .filter(getattr(join_model, child_col) == child_id)
        .delete(synchronize_session=False)
    )
    if not deleted:
        raise NotFoundError(
            f"{TEMPLATE_LABELS[child_model]} {child_id} is not attached to "
            f"{TEMPLATE_LABELS[parent_model].lower()} {parent_id}"
        )
    db.commit()


def get_child_links(db: Session, parent_model, parent_id: int) -> list:
    join_model, parent_col, _, _ = TEMPLATE_LINKS[parent_model]
    return (
        db.query(join_model)
        .filter(getattr(join_model, parent_col) == parent_id)
        .order_by(join_model.position)
        .all()
    )


# ── Dropdowns ──────────────────────────────────────────────────────────────


def create_dropdown_item(db: Session, name: str) -> DropdownItem:
    ts = now()
    item = DropdownItem(name=name, created_at=ts, updated_at=ts)
    db.add(item)
    db.commit()
    db.refresh(item)
    return item


def list_dropdown_items(db: Session) -> list[DropdownItem]:
    return db.query(DropdownItem).order_by(DropdownItem.id).all()


def create_dropdown_template(
    db: Session,
    dropdown_item_id: int,
    task_template_id: int | None = None,
    fn_template_id: int | None = None,
    input_template_id: int | None = None,
) -> DropdownTemplate:
    if not db.query(DropdownItem).filter(DropdownItem.id == dropdown_item_id).first():
        raise NotFoundError(f"Dropdown item {dropdown_item_id} not found")
    if task_template_id is not None:
        get_template_or_404(db, TaskTemplate, task_template_id)
    if fn_template_id is not None:
        get_template_or_404(db, FnTemplate, fn_template_id)
    if input_template_id is not None:
        get_template_or_404(db, InputTemplate, input_template_id)

    ts = now()
    dropdown = DropdownTemplate(
        dropdown_item_id=dropdown_item_id,
        task_template_id=task_template_id,
        fn_template_id=fn_template_id,
        input_template_id=input_template_id,
        created_at=ts,
        updated_at=ts,
    )
    db.add(dropdown)
    db.commit()
    db.refresh(dropdown)
    return dropdown


def get_dropdown_templates_for(
    db: Session,
    task_template_id: int | None = None,
    fn_template_id: int | None = None,
    input_template_id: int | None = None,
) -> list[DropdownTemplate]:
    query = db.query(DropdownTemplate)
    if task_template_id is not None:
        query = query.filter(DropdownTemplate.task_template_id == task_template_id)
    if fn_template_id is not None:
        query = query.filter(DropdownTemplate.fn_template_id == fn_template_id)
    if input_template_id is not None:
        query = query.filter(DropdownTemplate.input_template_id == input_template_id)
    return query.order_by(DropdownTemplate.id).all()


# ── Metadata templates ─────────────────────────────────────────────────────


def create_metadata_template(
    db: Session,
    task_template_id: int | None = None,
    fn_template_id: int | None = None,
    field_template_id: int | None = None,
    input_template_id: int | None = None,
) -> MetadataTemplate:
    owners = {
        TaskTemplate: task_template_id,
        FnTemplate: fn_template_id,
        FieldTemplate: field_template_id,
        InputTemplate: input_template_id,
    }
    for model, template_id in owners.items():
        if template_id is not None:
            get_template_or_404(db, model, template_id)

    ts = now()
    metadata_template = MetadataTemplate(
        task_template_id=task_template_id,
        fn_template_id=fn_template_id,
        field_template_id=field_template_id,
        input_template_id=input_template_id,
        created_at=ts,
        updated_at=ts,
    )
    db.add(metadata_template)
    db.commit()
    db.refresh(metadata_template)
    return metadata_template


def get_metadata_template(db: Session, metadata_template_id: int) -> MetadataTemplate | None:
    return (
        db.query(MetadataTemplate)
        .filter(MetadataTemplate.id == metadata_template_id)
        .first()
    )


def list_metadata_templates(
    db: Session,
    task_template_id: int | None = None,
    fn_template_id: int | None = None,
    field_template_id: int | None = None,
    input_template_id: int | None = None,
) -> list[MetadataTemplate]:
    query = db.query(MetadataTemplate)
    for column, value in (
        (MetadataTemplate.task_template_id, task_template_id),
        (MetadataTemplate.fn_template_id, fn_template_id),
        (MetadataTemplate.field_template_id, field_template_id),
        (MetadataTemplate.input_template_id, input_template_id),
    ):
        if value is not None:
            query = query.filter(column == value)
    return query.order_by(MetadataTemplate.id).all()


def find_metadata_templates(
    db: Session,
    task_template_ids=(),
    fn_template_ids=(),
    field_template_ids=(),
    input_template_ids=(),
) -> list[MetadataTemplate]:
    """Metadata templates attached to any of the given templates."""
    clauses = [
        column.in_(ids)
        for column, ids in (
            (MetadataTemplate.task_template_id, task_template_ids),
            (MetadataTemplate.fn_template_id, fn_template_ids),
            (MetadataTemplate.field_template_id, field_template_ids),
            (MetadataTemplate.input_template_id, input_template_ids),
        )
        if ids
    ]
    if not clauses:
        return []
    return (
        db.query(MetadataTemplate)
        .filter(or_(*clauses))
        .order_by(MetadataTemplate.id)
        .all()
    )


def delete_metadata_template(db: Session, metadata_template_id: int):
    metadata_template = get_metadata_template(db, metadata_template_id)
    if not metadata_template:
        raise NotFoundError(f"Metadata template {metadata_template_id} not found")
    if db.query(MetadataInstance).filter(
        MetadataInstance.metadata_template_id == metadata_template_id
    ).first():
        raise ConflictError(
            f"Metadata template {metadata_template_id} is used by task instances"
        )
    db.delete(metadata_template)
    db.commit()


# ── Conditional actions ────────────────────────────────────────────────────


def create_conditional_action(
    db: Session,
    input_template_id: int,
    name: str,
    action_type: str,
    description: str | None = None,
    targets: dict | None = None,
    notify_user_ids: list[int] | None = None,
) -> ConditionalAction:
    """Persist a rule.

    ``targets`` maps one of the ``targeted_*_template_id`` column names to an
    id; callers are expected to have validated it against ``action_type``.
    """
    get_template_or_404(db, InputTemplate, input_template_id)
    targets = targets or {}
    target_models = {
        "targeted_task_template_id": TaskTemplate,
        "targeted_fn_template_id": FnTemplate,
        "targeted_field_template_id": FieldTemplate,
        "targeted_input_template_id": InputTemplate,
    }
    for column, target_id in targets.items():
        get_template_or_404(db, target_models[column], target_id)
    for user_id in notify_user_ids or []:
        if not get_user(db, user_id):
            raise NotFoundError(f"User {user_id} not found")

    ts = now()
    action = ConditionalAction(
        input_template_id=input_template_id,
        name=name,
        type=action_type,
        description=description,
        created_at=ts,
        updated_at=ts,
        **targets,
    )
    db.add(action)
    db.flush()
    for user_id in dict.fromkeys(notify_user_ids or []):
        db.add(ConditionalActionUser(conditional_action_id=action.id, user_id=user_id))
    db.commit()
    db.refresh(action)
    return action


def get_conditional_action(db: Session, action_id: int) -> ConditionalAction | None:
    return db.query(ConditionalAction).filter(ConditionalAction.id == action_id).first()


def get_conditional_actions_for_input(
    db: Session, input_template_id: int
) -> list[ConditionalAction]:
    return (
        db.query(ConditionalAction)
        .filter(ConditionalAction.input_template_id == input_template_id)
        .order_by(ConditionalAction.id)
        .all()
    )


def get_notify_user_ids(db: Session, action_id: int) -> list[int]:
    rows = (
        db.query(ConditionalActionUser)
        .filter(ConditionalActionUser.conditional_action_id == action_id)
        .order_by(ConditionalActionUser.id)
        .all()
    )
    return [r.user_id for r in rows]


def delete_conditional_action(db: Session, action_id: int):
    action = get_conditional_action(db, action_id)
    if not action:
        raise NotFoundError(f"Conditional action {action_id} not found")
    if db.query(InputInstance).filter(
        InputInstance.triggering_conditional_action_id == action_id
    ).first():
        raise ConflictError(
            f"Conditional action {action_id} has already created dynamic inputs"
        )
    db.query(ConditionalActionUser).filter(
        ConditionalActionUser.conditional_action_id == action_id
    ).delete(synchronize_session=False)
    db.delete(action)
    db.commit()
