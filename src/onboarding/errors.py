"""
Onboarding error taxonomy.

User-correctable outcomes (field validation, disallowed navigation) are
returned as values. Everything here is exceptional and propagates to the
router, which maps it to an HTTP response.
"""


class OnboardingError(Exception):
    """Base class for onboarding failures."""


class FlowIntegrityError(OnboardingError):
    """Catalog/registry mismatch. Never caused by ordinary user input."""


class SchemaNotFound(FlowIntegrityError):
    def __init__(self, step_name: str, service_type: str | None = None):
        self.step_name = step_name
        self.service_type = service_type
        detail = f"No schema registered for step '{step_name}'"
        if service_type is not None:
            detail += f" and service type '{service_type}'"
        super().__init__(detail)


class UnknownStep(FlowIntegrityError):
    def __init__(self, step: str):
        self.step = step
        super().__init__(f"Unknown onboarding step: {step}")


class ServiceTypeMismatch(FlowIntegrityError):
    def __init__(self, expected: str, received: str):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Requirements tagged '{received}' submitted to a '{expected}' flow"
        )


class PersistenceFailure(OnboardingError):
    """Transient failure writing to the submission store. Safe to retry."""


class IncompleteFlowError(OnboardingError):
    """Raised when a submission is assembled before required steps complete."""

    def __init__(self, missing_steps: list[str]):
        self.missing_steps = missing_steps
        super().__init__(f"Required steps not completed: {', '.join(missing_steps)}")

    def to_dict(self) -> dict:
        return {
            "error": "incomplete_flow",
            "message": str(self),
            "missing_steps": self.missing_steps,
        }


class SessionNotFound(OnboardingError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Onboarding session not found: {session_id}")
