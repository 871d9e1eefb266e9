"""
Core Exceptions
===============

Error hierarchy of the automation core.

Collaborator failures (entity store, notification inbox) surface as
ApplicationException subclasses so that the engines can turn them into
failed action results or skipped records instead of crashing a sweep.
Deterministic errors (DomainException, ValidationException,
ResourceNotFoundException) are never retried by the task dispatcher.
"""

from typing import Any, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """A domain rule was violated (e.g. a milestone recorded twice)."""


class RepositoryException(ApplicationException):
    """Reading or writing persisted state failed."""


class InvalidDefinitionException(RepositoryException):
    """A stored workflow template or assignment rule no longer validates."""

    def __init__(self, kind: str, definition_id: str, errors: Any):
        self.kind = kind
        self.definition_id = definition_id
        super().__init__(
            f"{kind} {definition_id} has an invalid definition",
            {"id": definition_id, "errors": str(errors)}
        )


class ValidationException(ApplicationException):
    """Input rejected before any state changed."""


class ResourceNotFoundException(ApplicationException):
    """A referenced ticket, user or definition does not exist."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = resource_type
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ExecutionStateException(DomainException):
    """Raised when a terminal workflow execution is mutated."""

    def __init__(self, execution_id: Optional[str], status: str):
        self.execution_id = execution_id
        self.status = status
        super().__init__(
            f"Workflow execution {execution_id} is already {status}",
            {"execution_id": execution_id, "status": status}
        )
