"""
Step Validator.

Pure function over the Schema Registry and candidate data. A step's data is
atomically valid or invalid: on failure every violated field yields exactly
one FieldError and nothing is committed.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from pydantic import ValidationError

from .errors import ServiceTypeMismatch
from .schemas import REQUIRED_MESSAGES, as_step_name, resolve
from .state import ServiceType, StepName

logger = logging.getLogger(__name__)


# pydantic error type -> stable code exposed to the frontend
ERROR_CODES = {
    "missing": "required",
    "string_too_short": "too_short",
    "too_short": "too_few_items",
    "literal_error": "invalid_choice",
    "enum": "invalid_choice",
    "string_type": "invalid_type",
    "list_type": "invalid_type",
    "bool_type": "invalid_type",
    "bool_parsing": "invalid_type",
    "dict_type": "invalid_type",
}

# Format errors pydantic reports as a generic value_error, keyed by wire name
FIELD_ERROR_CODES = {
    ("contactEmail", "value_error"): "invalid_email",
}
FIELD_ERROR_MESSAGES = {
    "invalid_email": "Invalid email address",
}

MIN_DESCRIPTION_WARNING = 40


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str
    code: str
    value: Any = None

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "code": self.code, "value": self.value}


@dataclass(frozen=True)
class FieldWarning:
    field: str
    message: str
    suggestion: str | None = None

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message, "suggestion": self.suggestion}


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating one step's data."""
    is_valid: bool
    errors: list[FieldError] = field(default_factory=list)
    warnings: list[FieldWarning] = field(default_factory=list)
    data: dict[str, Any] | None = None   # Normalized payload, only when valid

    @property
    def error_messages(self) -> list[str]:
        return [f"{e.field}: {e.message}" for e in self.errors]

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _field_error(err: dict) -> FieldError:
    loc = err.get("loc") or ("__root__",)
    field_name = str(loc[0])
    code = FIELD_ERROR_CODES.get((field_name, err["type"])) or ERROR_CODES.get(err["type"], err["type"])
    if code == "invalid_email" and not str(err.get("input") or "").strip():
        code = "required"

    if code in FIELD_ERROR_MESSAGES:
        message = FIELD_ERROR_MESSAGES[code]
    elif code in ("required", "too_short", "too_few_items") and field_name in REQUIRED_MESSAGES:
        message = REQUIRED_MESSAGES[field_name]
    elif code == "must_be_true" and field_name in REQUIRED_MESSAGES:
        message = REQUIRED_MESSAGES[field_name]
    else:
        message = err["msg"]

    value = err.get("input")
    if isinstance(value, dict) and code == "required":
        value = None
    return FieldError(field=field_name, message=message, code=code, value=value)


def _unwrap_requirements(data: dict[str, Any], service_type: ServiceType | str | None) -> dict[str, Any]:
    """
    Accept both flat requirement dicts and {serviceType, requirements} envelopes.

    A serviceType tag that disagrees with the flow's ServiceType is a
    programming error, not user input.
    """
    tag = data.get("serviceType")
    if tag is not None and service_type is not None and tag != ServiceType(service_type).value:
        raise ServiceTypeMismatch(ServiceType(service_type).value, str(tag))
    if isinstance(data.get("requirements"), dict):
        return data["requirements"]
    return {k: v for k, v in data.items() if k != "serviceType"}


def _warnings_for(step_name: StepName, data: dict[str, Any]) -> list[FieldWarning]:
    warnings = []
    if step_name is StepName.BASIC_INFO:
        description = data.get("projectDescription") or ""
        if len(description) < MIN_DESCRIPTION_WARNING:
            warnings.append(FieldWarning(
                field="projectDescription",
                message="Short descriptions make it harder to scope the project",
                suggestion="Mention goals, audience and any deadlines",
            ))
        if data.get("preferredContact") in ("phone", "both") and not data.get("contactPhone"):
            warnings.append(FieldWarning(
                field="contactPhone",
                message="Phone is your preferred contact method but no number was given",
                suggestion="Add a phone number or switch to email",
            ))
    return warnings


def validate_step(
    step: StepName | str,
    service_type: ServiceType | str | None,
    data: dict[str, Any] | None,
) -> ValidationResult:
    """
    Validate candidate data for a step.

    Raises (fatal, never user-caused):
        UnknownStep, SchemaNotFound, ServiceTypeMismatch
    """
    step_name = as_step_name(step)
    schema = resolve(step_name, service_type)
    payload = dict(data or {})

    if step_name is StepName.SERVICE_REQUIREMENTS:
        payload = _unwrap_requirements(payload, service_type)

    try:
        model = schema.model_validate(payload)
    except ValidationError as e:
        errors: dict[str, FieldError] = {}
        for err in e.errors():
            field_error = _field_error(err)
            # One error per field; first violation wins
            errors.setdefault(field_error.field, field_error)
        logger.debug(f"Validation failed for {step_name.value}: {list(errors)}")
        return ValidationResult(is_valid=False, errors=list(errors.values()))

    normalized = model.model_dump(by_alias=True, mode="json")
    return ValidationResult(
        is_valid=True,
        warnings=_warnings_for(step_name, normalized),
        data=normalized,
    )
