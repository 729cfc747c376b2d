from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from workdesk.db.database import Base


# ── Directory ──────────────────────────────────────────────────────────────


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    phone = Column(String(20), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    disabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class UserRole(Base):
    __tablename__ = "user_roles"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    role = Column(String, primary_key=True)


class UserDepartment(Base):
    __tablename__ = "user_departments"

    user_id = Column(Integer, ForeignKey("users.id"), primary_key=True)
    department = Column(String, primary_key=True)


class ParentCompany(Base):
    __tablename__ = "parent_companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(900), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(15), nullable=True)
    address = Column(String(900), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    pincode = Column(String(255), nullable=True)
    person_of_contact = Column(String(255), nullable=True)
    business_type = Column(String(255), nullable=True)
    head_office_address = Column(String(900), nullable=True)
    remark = Column(String(500), nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(900), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(20), nullable=True)
    address = Column(String(900), nullable=True)
    city = Column(String(255), nullable=True)
    state = Column(String(255), nullable=True)
    pincode = Column(String(20), nullable=True)
    person_of_contact = Column(String(255), nullable=True)
    gst = Column(String(255), nullable=True)
    pan = Column(String(255), nullable=True)
    parent_company_id = Column(
        Integer, ForeignKey("parent_companies.id"), nullable=True
    )
    disabled = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


# ── Templates ──────────────────────────────────────────────────────────────


class TaskTemplate(Base):
    __tablename__ = "task_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class FnTemplate(Base):
    __tablename__ = "fn_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(String(255), nullable=True)
    department = Column(String, nullable=False, default="SERVICE")
    is_choice = Column(Boolean, nullable=False, default=False)
    next_follow_up_fn_template_id = Column(
        Integer, ForeignKey("fn_templates.id"), nullable=True
    )
    type = Column(String, nullable=False, default="NORMAL")
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class FieldTemplate(Base):
    __tablename__ = "field_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(String(255), nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class InputTemplate(Base):
    __tablename__ = "input_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    type = Column(String, nullable=False, default="TEXT")
    condition = Column(String, nullable=True)
    comparison_value = Column(String(255), nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class TaskTemplateFnTemplate(Base):
    __tablename__ = "task_templates_fn_templates"

    task_template_id = Column(
        Integer, ForeignKey("task_templates.id"), primary_key=True
    )
    fn_template_id = Column(Integer, ForeignKey("fn_templates.id"), primary_key=True)
    position = Column(Integer, nullable=False, default=0)


class FnTemplateFieldTemplate(Base):
    __tablename__ = "fn_template_field_templates"

    fn_template_id = Column(Integer, ForeignKey("fn_templates.id"), primary_key=True)
    field_template_id = Column(
        Integer, ForeignKey("field_templates.id"), primary_key=True
    )
    position = Column(Integer, nullable=False, default=0)


class FieldTemplateInputTemplate(Base):
    __tablename__ = "field_template_input_templates"

    field_template_id = Column(
        Integer, ForeignKey("field_templates.id"), primary_key=True
    )
    input_template_id = Column(
        Integer, ForeignKey("input_templates.id"), primary_key=True
    )
    position = Column(Integer, nullable=False, default=0)


class DropdownItem(Base):
    __tablename__ = "dropdown_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class DropdownTemplate(Base):
    __tablename__ = "dropdown_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dropdown_item_id = Column(
        Integer, ForeignKey("dropdown_items.id"), nullable=False
    )
    task_template_id = Column(Integer, ForeignKey("task_templates.id"), nullable=True)
    fn_template_id = Column(Integer, ForeignKey("fn_templates.id"), nullable=True)
    input_template_id = Column(
        Integer, ForeignKey("input_templates.id"), nullable=True
    )
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class MetadataTemplate(Base):
    __tablename__ = "metadata_templates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_template_id = Column(Integer, ForeignKey("task_templates.id"), nullable=True)
    fn_template_id = Column(Integer, ForeignKey("fn_templates.id"), nullable=True)
    field_template_id = Column(
        Integer, ForeignKey("field_templates.id"), nullable=True
    )
    input_template_id = Column(
        Integer, ForeignKey("input_templates.id"), nullable=True
    )
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class ConditionalAction(Base):
    __tablename__ = "conditional_actions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    input_template_id = Column(
        Integer, ForeignKey("input_templates.id"), nullable=False, index=True
    )
    name = Column(String(255), nullable=False)
    type = Column(String, nullable=False, default="ADD_DYNAMIC_INPUT")
    description = Column(String(500), nullable=True)
    targeted_task_template_id = Column(
        Integer, ForeignKey("task_templates.id"), nullable=True
    )
    targeted_fn_template_id = Column(
        Integer, ForeignKey("fn_templates.id"), nullable=True
    )
    targeted_field_template_id = Column(
        Integer, ForeignKey("field_templates.id"), nullable=True
    )
    targeted_input_template_id = Column(
        Integer, ForeignKey("input_templates.id"), nullable=True
    )
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class ConditionalActionUser(Base):
    __tablename__ = "conditional_action_users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conditional_action_id = Column(
        Integer, ForeignKey("conditional_actions.id"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)


# ── Instances ──────────────────────────────────────────────────────────────


class TaskInstance(Base):
    __tablename__ = "task_instances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    task_template_id = Column(
        Integer, ForeignKey("task_templates.id"), nullable=False
    )
    code = Column(String(255), nullable=False, unique=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    priority = Column(String, nullable=False, default="NORMAL")
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assignee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    closed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    is_archived = Column(Boolean, nullable=False, default=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
    closed_at = Column(String, nullable=True)


class FnInstance(Base):
    __tablename__ = "fn_instances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fn_template_id = Column(Integer, ForeignKey("fn_templates.id"), nullable=False)
    task_instance_id = Column(
        Integer, ForeignKey("task_instances.id"), nullable=False, index=True
    )
    previous_fn_instance_id = Column(
        Integer, ForeignKey("fn_instances.id"), nullable=True
    )
    remarks = Column(String(1000), nullable=True)
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    assignee_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    closed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
    closed_at = Column(String, nullable=True)


class FieldInstance(Base):
    __tablename__ = "field_instances"

    id = Column(Integer, primary_key=True, autoincrement=True)
    field_template_id = Column(
        Integer, ForeignKey("field_templates.id"), nullable=False
    )
    fn_instance_id = Column(
        Integer, ForeignKey("fn_instances.id"), nullable=False, index=True
    )
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    closed_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)
    closed_at = Column(String, nullable=True)


class InputInstance(Base):
    __tablename__ = "input_instances"
    __table_args__ = (
        # NULLs are distinct, so only dynamic inputs are constrained.
        UniqueConstraint(
            "field_instance_id",
            "triggering_conditional_action_id",
            name="uq_input_instances_field_action",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    input_template_id = Column(
        Integer, ForeignKey("input_templates.id"), nullable=False
    )
    field_instance_id = Column(
        Integer, ForeignKey("field_instances.id"), nullable=False, index=True
    )
    value = Column(JSON(none_as_null=True), nullable=True)
    file_paths = Column(JSON(none_as_null=True), nullable=True)
    is_dynamically_created = Column(Boolean, nullable=False, default=False)
    triggering_conditional_action_id = Column(
        Integer, ForeignKey("conditional_actions.id"), nullable=True
    )
    created_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    updated_by_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    remarks = Column(String(1000), nullable=True)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class MetadataInstance(Base):
    __tablename__ = "metadata_instances"
    __table_args__ = (
        UniqueConstraint(
            "task_instance_id",
            "metadata_template_id",
            name="uq_metadata_instance_per_task",
        ),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    metadata_template_id = Column(
        Integer, ForeignKey("metadata_templates.id"), nullable=False
    )
    task_instance_id = Column(Integer, ForeignKey("task_instances.id"), nullable=False)
    created_at = Column(String, nullable=False)
    updated_at = Column(String, nullable=False)


class TaskInstanceDropdownTemplate(Base):
    __tablename__ = "task_instances_dropdown_templates"

    task_instance_id = Column(
        Integer, ForeignKey("task_instances.id"), primary_key=True
    )
    dropdown_template_id = Column(
        Integer, ForeignKey("dropdown_templates.id"), primary_key=True
    )


class FnInstanceDropdownTemplate(Base):
    __tablename__ = "fn_instances_dropdown_templates"

    fn_instance_id = Column(Integer, ForeignKey("fn_instances.id"), primary_key=True)
    dropdown_template_id = Column(
        Integer, ForeignKey("dropdown_templates.id"), primary_key=True
    )


class InputInstanceDropdownTemplate(Base):
    __tablename__ = "input_instances_dropdown_templates"

    input_instance_id = Column(
        Integer, ForeignKey("input_instances.id"), primary_key=True
    )
    dropdown_template_id = Column(
        Integer, ForeignKey("dropdown_templates.id"), primary_key=True
    )


# ── Analytics ──────────────────────────────────────────────────────────────


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    activity_type = Column(String, nullable=False)
    entity_type = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    ip_address = Column(String(45), nullable=True)
    description = Column(String(500), nullable=False)
    details = Column(JSON(none_as_null=True), nullable=True)
    status_code = Column(Integer, nullable=True)
    tags = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(String, nullable=False, index=True)


class PerformanceMetric(Base):
    __tablename__ = "performance_metrics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    metric_type = Column(String, nullable=False)
    operation = Column(String(255), nullable=False, index=True)
    duration_ms = Column(Float, nullable=False)
    http_method = Column(String(10), nullable=True)
    status_code = Column(Integer, nullable=True)
    entity_type = Column(String(100), nullable=True)
    entity_id = Column(Integer, nullable=True)
    user_id = Column(Integer, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(500), nullable=True)
    metadata_ = Column("metadata", JSON(none_as_null=True), nullable=True)
    created_at = Column(String, nullable=False, index=True)


class Statistic(Base):
    __tablename__ = "statistics"

    id = Column(Integer, primary_key=True, autoincrement=True)
    statistic_type = Column(String, nullable=False, index=True)
    time_period = Column(String, nullable=False)
    name = Column(String(255), nullable=False)
    category = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    period_start = Column(String, nullable=False)
    period_end = Column(String, nullable=False)
    data = Column(JSON, nullable=False)
    dimensions = Column(JSON(none_as_null=True), nullable=True)
    created_at = Column(String, nullable=False, index=True)
    updated_at = Column(String, nullable=False)
