"""Typed input values.

Values are submitted and stored as plain JSON; this module validates them
against the owning input template's type and normalises them into an
``InputValue`` variant before they are written.
"""
import math
from dataclasses import dataclass
from datetime import date
from typing import Annotated, Any

from pydantic import EmailStr, StringConstraints, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from workdesk.core.errors import ValidationError
from workdesk.core.models import InputType

Phone = Annotated[str, StringConstraints(pattern=r"^\+?[0-9][0-9 \-]{4,18}[0-9]$")]
Path = Annotated[str, StringConstraints(min_length=1)]

_ADAPTERS: dict[InputType, TypeAdapter] = {
    InputType.TEXT: TypeAdapter(str),
    InputType.TEXTAREA: TypeAdapter(str),
    InputType.RICH_TEXT_EDITOR: TypeAdapter(str),
    InputType.DROPDOWN: TypeAdapter(str),
    InputType.NUMBER: TypeAdapter(float),
    InputType.AMOUNT: TypeAdapter(float),
    InputType.EMAIL: TypeAdapter(EmailStr),
    InputType.PHONE: TypeAdapter(Phone),
    InputType.BOOLEAN: TypeAdapter(bool),
    InputType.CHECKBOX: TypeAdapter(list[str]),
    InputType.DATE: TypeAdapter(date),
    InputType.FILE: TypeAdapter(Path),
    InputType.MULTIPLE_FILES: TypeAdapter(list[Path]),
    InputType.TABLE: TypeAdapter(list[dict[str, Any]]),
}

FILE_TYPES = (InputType.FILE, InputType.MULTIPLE_FILES)


@dataclass(frozen=True)
class InputValue:
    kind: InputType
    value: Any

    def to_json(self) -> Any:
        if self.value is None:
            return None
        if self.kind == InputType.DATE:
            return self.value.isoformat()
        if self.kind in (InputType.NUMBER, InputType.AMOUNT) and self.value.is_integer():
            return int(self.value)
        return self.value

    def file_paths(self) -> list[str] | None:
        if self.kind == InputType.FILE and self.value is not None:
            return [self.value]
        if self.kind == InputType.MULTIPLE_FILES and self.value is not None:
            return list(self.value)
        return None


def parse_value(input_type: str, raw: Any) -> InputValue:
    """Validate ``raw`` for ``input_type``. ``None`` clears the value."""
    try:
        kind = InputType(input_type)
    except ValueError:
        raise ValidationError(f"Unknown input type '{input_type}'")

    if raw is None:
        return InputValue(kind, None)

    # Booleans are ints in Python; keep them out of numeric inputs.
    if kind in (InputType.NUMBER, InputType.AMOUNT) and isinstance(raw, bool):
        raise ValidationError(f"Invalid {kind.value} value: expected a number")

    try:
        value = _ADAPTERS[kind].validate_python(raw)
    except PydanticValidationError as e:
        reason = e.errors()[0]["msg"] if e.errors() else str(e)
        raise ValidationError(f"Invalid {kind.value} value: {reason}") from e

    if isinstance(value, float) and not math.isfinite(value):
        raise ValidationError(f"Invalid {kind.value} value: must be a finite number")
    if kind == InputType.EMAIL:
        value = str(value)
    return InputValue(kind, value)
