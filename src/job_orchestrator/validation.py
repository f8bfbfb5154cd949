"""Validation of child-task specs returned by handlers."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from .models import now_iso


class ChildTaskSpec(BaseModel):
    """Description of a task a handler wants spawned.

    ``id`` and ``dependsOn`` entries may be short (scoped under the parent) or
    already fully qualified.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    service: str
    command: str
    input: dict[str, Any] = Field(default_factory=dict)
    depends_on: list[str] = Field(default_factory=list, alias="dependsOn")

    @field_validator("service", "command")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must be a non-empty string")
        return value

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id_is_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @field_validator("input", "depends_on", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "input" else []
        return value


@dataclass
class ValidationReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    tasks_validated: int = 0
    timestamp: str = field(default_factory=now_iso)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def format_validation_error(label: str, err: dict[str, Any]) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()))
    msg = err.get("msg", "validation failed")
    return f"{label}: {loc}: {msg}" if loc else f"{label}: {msg}"


def validate_child_tasks(child_tasks: Any, parent_id: str) -> tuple[ValidationReport, list[ChildTaskSpec]]:
    """Validate raw child specs and return the report plus the parsed specs.

    Parsed specs are only meaningful when ``report.is_valid`` is true.
    """
    if not isinstance(child_tasks, list):
        return ValidationReport(is_valid=False, errors=["childTasks must be an array"]), []

    errors: list[str] = []
    parsed: list[ChildTaskSpec] = []
    for index, raw in enumerate(child_tasks):
        label = f"Child task {index} of {parent_id}"
        if isinstance(raw, ChildTaskSpec):
            parsed.append(raw)
            continue
        if not isinstance(raw, dict):
            errors.append(f"{label}: expected an object, got {type(raw).__name__}")
            continue
        try:
            parsed.append(ChildTaskSpec.model_validate(raw))
        except ValidationError as exc:
            errors.extend(format_validation_error(label, err) for err in exc.errors())

    return (
        ValidationReport(is_valid=not errors, errors=errors, tasks_validated=len(parsed)),
        parsed,
    )
