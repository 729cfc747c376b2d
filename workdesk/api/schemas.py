from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from workdesk.core.models import (
    ConditionalActionType,
    ConditionType,
    DepartmentType,
    FnTemplateType,
    InputType,
    Priority,
    RoleType,
)
from workdesk.core.targets import TargetField, TargetFn, TargetInput, TargetTask


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# --- Directory ---

class UserCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    phone: str | None = Field(default=None, max_length=20)
    is_admin: bool = False
    roles: list[RoleType] = Field(default_factory=list)
    departments: list[DepartmentType] = Field(default_factory=list)


class UserResponse(ORMModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    is_admin: bool
    disabled: bool
    roles: list[str] = Field(default_factory=list)
    departments: list[str] = Field(default_factory=list)
    created_at: str


class ParentCompanyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=900)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=15)
    address: str | None = Field(default=None, max_length=900)
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    person_of_contact: str | None = None
    business_type: str | None = None
    head_office_address: str | None = Field(default=None, max_length=900)
    remark: str | None = Field(default=None, max_length=500)


class ParentCompanyResponse(ORMModel):
    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    person_of_contact: str | None = None
    business_type: str | None = None
    head_office_address: str | None = None
    remark: str | None = None
    created_at: str


class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=900)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=20)
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = Field(default=None, max_length=20)
    person_of_contact: str | None = None
    gst: str | None = None
    pan: str | None = None
    parent_company_id: int | None = None


class CustomerResponse(ORMModel):
    id: int
    name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None
    person_of_contact: str | None = None
    gst: str | None = None
    pan: str | None = None
    parent_company_id: int | None = None
    disabled: bool
    created_at: str


# --- Templates ---

class TaskTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class TaskTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None


class FnTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    department: DepartmentType = DepartmentType.SERVICE
    is_choice: bool = False
    next_follow_up_fn_template_id: int | None = None
    type: FnTemplateType = FnTemplateType.NORMAL


class FnTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    department: DepartmentType | None = None
    is_choice: bool | None = None
    next_follow_up_fn_template_id: int | None = None
    type: FnTemplateType | None = None


class FieldTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None


class FieldTemplateUpdate(TaskTemplateUpdate):
    pass


class InputTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: InputType = InputType.TEXT
    condition: ConditionType | None = None
    comparison_value: str | None = Field(default=None, max_length=255)


class InputTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: InputType | None = None
    condition: ConditionType | None = None
    comparison_value: str | None = Field(default=None, max_length=255)


class TaskTemplateResponse(ORMModel):
    id: int
    name: str
    description: str | None = None
    created_at: str
    updated_at: str


class FnTemplateResponse(TaskTemplateResponse):
    department: str
    is_choice: bool
    next_follow_up_fn_template_id: int | None = None
    type: str


class FieldTemplateResponse(TaskTemplateResponse):
    pass


class InputTemplateResponse(ORMModel):
    id: int
    name: str
    type: str
    condition: str | None = None
    comparison_value: str | None = None
    created_at: str
    updated_at: str


class TemplateLink(BaseModel):
    child_id: int
    position: int | None = Field(default=None, ge=0)


class InputNode(BaseModel):
    template: InputTemplateResponse
    dropdown_template_ids: list[int]


class FieldNode(BaseModel):
    template: FieldTemplateResponse
    inputs: list[InputNode]


class FnNode(BaseModel):
    template: FnTemplateResponse
    dropdown_template_ids: list[int]
    fields: list[FieldNode]


class TaskTemplateGraph(BaseModel):
    template: TaskTemplateResponse
    dropdown_template_ids: list[int]
    fns: list[FnNode]
    metadata_template_ids: list[int] = Field(default_factory=list)


class DropdownItemCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)


class DropdownItemResponse(ORMModel):
    id: int
    name: str
    created_at: str


class DropdownTemplateCreate(BaseModel):
    dropdown_item_id: int
    task_template_id: int | None = None
    fn_template_id: int | None = None
    input_template_id: int | None = None

    @model_validator(mode="after")
    def check_owner(self):
        owners = [self.task_template_id, self.fn_template_id, self.input_template_id]
        if sum(o is not None for o in owners) != 1:
            raise ValueError(
                "Exactly one of task_template_id, fn_template_id, "
                "input_template_id must be set"
            )
        return self


class DropdownTemplateResponse(ORMModel):
    id: int
    dropdown_item_id: int
    task_template_id: int | None = None
    fn_template_id: int | None = None
    input_template_id: int | None = None
    created_at: str


class MetadataTemplateCreate(BaseModel):
    task_template_id: int | None = None
    fn_template_id: int | None = None
    field_template_id: int | None = None
    input_template_id: int | None = None

    @model_validator(mode="after")
    def check_owner(self):
        if all(
            v is None
            for v in (
                self.task_template_id,
                self.fn_template_id,
                self.field_template_id,
                self.input_template_id,
            )
        ):
            raise ValueError("A metadata template needs at least one template id")
        return self


class MetadataTemplateResponse(ORMModel):
    id: int
    task_template_id: int | None = None
    fn_template_id: int | None = None
    field_template_id: int | None = None
    input_template_id: int | None = None
    created_at: str


# --- Conditional actions ---

class TaskTargetIn(BaseModel):
    kind: Literal["task"]
    task_template_id: int

    def to_target(self):
        return TargetTask(self.task_template_id)


class FnTargetIn(BaseModel):
    kind: Literal["fn"]
    fn_template_id: int

    def to_target(self):
        return TargetFn(self.fn_template_id)


class FieldTargetIn(BaseModel):
    kind: Literal["field"]
    field_template_id: int

    def to_target(self):
        return TargetField(self.field_template_id)


class InputTargetIn(BaseModel):
    kind: Literal["input"]
    input_template_id: int

    def to_target(self):
        return TargetInput(self.input_template_id)


TargetIn = Annotated[
    Union[TaskTargetIn, FnTargetIn, FieldTargetIn, InputTargetIn],
    Field(discriminator="kind"),
]


class ConditionalActionCreate(BaseModel):
    input_template_id: int
    name: str = Field(min_length=1, max_length=255)
    type: ConditionalActionType
    description: str | None = Field(default=None, max_length=500)
    target: TargetIn | None = None
    notify_user_ids: list[int] = Field(default_factory=list)


class ConditionalActionResponse(BaseModel):
    id: int
    input_template_id: int
    name: str
    type: str
    description: str | None = None
    target: dict | None = None
    notify_user_ids: list[int] = Field(default_factory=list)
    created_at: str


# --- Instances ---

class TaskInstanceCreate(BaseModel):
    task_template_id: int
    customer_id: int
    assignee_id: int
    priority: Priority = Priority.NORMAL


class InputInstanceResponse(ORMModel):
    id: int
    input_template_id: int
    field_instance_id: int
    value: Any = None
    file_paths: list[str] | None = None
    is_dynamically_created: bool
    triggering_conditional_action_id: int | None = None
    remarks: str | None = None
    dropdown_template_ids: list[int] = Field(default_factory=list)
    created_by_id: int
    updated_by_id: int | None = None
    created_at: str
    updated_at: str


class FieldInstanceResponse(ORMModel):
    id: int
    field_template_id: int
    fn_instance_id: int
    closed_by_id: int | None = None
    closed_at: str | None = None
    inputs: list[InputInstanceResponse] = Field(default_factory=list)


class FnInstanceResponse(ORMModel):
    id: int
    fn_template_id: int
    task_instance_id: int
    previous_fn_instance_id: int | None = None
    assignee_id: int
    closed_by_id: int | None = None
    closed_at: str | None = None
    remarks: str | None = None
    dropdown_template_ids: list[int] = Field(default_factory=list)
    fields: list[FieldInstanceResponse] = Field(default_factory=list)


class TaskInstanceResponse(ORMModel):
    id: int
    task_template_id: int
    code: str
    customer_id: int
    priority: str
    created_by_id: int
    assignee_id: int
    closed_by_id: int | None = None
    closed_at: str | None = None
    is_archived: bool
    created_at: str
    dropdown_template_ids: list[int] = Field(default_factory=list)
    metadata_template_ids: list[int] = Field(default_factory=list)
    fns: list[FnInstanceResponse] = Field(default_factory=list)


class InputValueWrite(BaseModel):
    value: Any = None
    remarks: str | None = Field(default=None, max_length=1000)


class ActionOutcomeResponse(BaseModel):
    action_id: int
    action_name: str
    action_type: str
    detail: str


class ActionFailureResponse(BaseModel):
    action_id: int
    action_name: str
    error_type: str
    message: str


class EvaluationResponse(BaseModel):
    input_instance_id: int
    applied: list[ActionOutcomeResponse]
    not_triggered: list[int]
    failures: list[ActionFailureResponse]


class InputValueWriteResponse(BaseModel):
    input: InputInstanceResponse
    evaluation: EvaluationResponse


class FnCloseRequest(BaseModel):
    follow_up_fn_template_id: int | None = None


class FnCloseResponse(BaseModel):
    fn_instance: FnInstanceResponse
    closed: bool
    follow_up: FnInstanceResponse | None = None


class TaskCloseResponse(BaseModel):
    task_instance: TaskInstanceResponse
    closed: bool


class FieldCloseResponse(BaseModel):
    field_instance: FieldInstanceResponse
    closed: bool


# --- Analytics & jobs ---

class ActivityLogResponse(ORMModel):
    id: int
    activity_type: str
    entity_type: str
    entity_id: int | None = None
    user_id: int
    description: str
    details: dict | None = None
    status_code: int | None = None
    tags: list[str] | None = None
    created_at: str


class StatisticResponse(ORMModel):
    id: int
    statistic_type: str
    time_period: str
    name: str
    category: str | None = None
    description: str | None = None
    period_start: str
    period_end: str
    data: Any
    dimensions: dict | None = None
    created_at: str


class StatisticChangeResponse(BaseModel):
    current: float
    previous: float
    percentage_change: float


class TrendPoint(BaseModel):
    period_start: str
    value: float


class SlowOperationResponse(BaseModel):
    operation: str
    avg_duration_ms: float
    count: int


class ErrorRateResponse(BaseModel):
    operation: str
    total: int
    errors: int
    error_rate: float


class JobResponse(BaseModel):
    name: str
    interval: float
    at: str | None = None
    running: bool


class JobRunResponse(BaseModel):
    name: str
    completed: bool


class AverageDurationResponse(BaseModel):
    operation: str
    avg_duration_ms: float
