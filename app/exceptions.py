# app/exceptions.py
"""
Error taxonomy for the lifecycle engines.

Every engine error is raised synchronously to the caller. Routers turn them into
HTTP responses through the handlers registered in main.py, the board session turns
them into a rollback plus a transient message.
"""

from typing import Optional


class WorkflowError(Exception):
    """Base class for all lifecycle engine errors"""

    status_code = 400
    default_message = "The operation could not be completed."

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None):
        self.message = message or self.default_message
        self.reason = reason
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message, "reason": self.reason}


class ValidationError(WorkflowError):
    """A lifecycle rule was violated. Always raised before any write happens."""

    status_code = 422
    default_message = "The requested change is not allowed."


class ConflictError(WorkflowError):
    """The target resource is already held (e.g. a timer is already running)"""

    status_code = 409
    default_message = "The resource is already in use."


class NotFoundError(WorkflowError):
    """A referenced task, feature or user does not exist (anymore)"""

    status_code = 404

    def __init__(self, kind: str, doc_id: str):
        self.kind = kind
        self.doc_id = doc_id
        super().__init__(f"{kind.capitalize()} '{doc_id}' not found", reason="not_found")


class StoreError(WorkflowError):
    """Underlying transport or transaction failure"""

    status_code = 503
    default_message = (
        "Could not save your changes right now. Please try again later. "
        "No changes were saved."
    )

    def __init__(self, message: Optional[str] = None):
        super().__init__(message, reason="store_unavailable")


# Rule violation reasons
FEATURE_REQUIRED = "feature_required"
BLOCKED_BY_DEPENDENCY = "blocked_by_dependency"
TEST_CASES_PENDING = "test_cases_pending"
FEATURE_MISMATCH = "feature_mismatch"
EMPTY_TRANSITION = "empty_transition"
