"""
Domain exceptions for the ticket lifecycle and split/merge engine.

Every service operation either returns a value or raises exactly one of these.
The HTTP layer maps them to responses in core_backend.exceptions.
"""
from django.db import models
from django.utils.translation import gettext_lazy as _


class BusinessRule(models.TextChoices):
    TICKET_NOT_OPEN = "TICKET_NOT_OPEN", _("Ticket Not Open")
    INVALID_TRANSITION = "INVALID_TRANSITION", _("Invalid Transition")
    TABLE_UNAVAILABLE = "TABLE_UNAVAILABLE", _("Table Unavailable")
    TABLE_MISMATCH = "TABLE_MISMATCH", _("Table Mismatch")
    CANNOT_MOVE_ALL_ITEMS = "CANNOT_MOVE_ALL_ITEMS", _("Cannot Move All Items")


class TicketError(Exception):
    """Base exception for ticket-engine errors."""

    code = "TICKET_ERROR"
    status_code = 400

    def __init__(self, message, details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def as_dict(self):
        data = {"error": self.message, "code": self.code}
        if self.details:
            data["details"] = self.details
        return data


class ValidationError(TicketError):
    """Raised when caller input is malformed. Never retried automatically."""

    status_code = 400

    def __init__(self, message, field=None, code="VALIDATION_ERROR", details=None):
        super().__init__(message, details)
        self.field = field
        self.code = code

    def as_dict(self):
        data = super().as_dict()
        if self.field:
            data["field"] = self.field
        return data


class NotFoundError(TicketError):
    """Raised when a referenced ticket, item or table does not exist."""

    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, resource, resource_id, message=None):
        self.resource = resource
        self.resource_id = resource_id
        if message is None:
            message = f"{resource} '{resource_id}' not found"
        super().__init__(message, {"resource": resource, "id": str(resource_id)})


class BusinessError(TicketError):
    """Raised when an operation violates a domain rule."""

    code = "BUSINESS_RULE_VIOLATION"
    status_code = 422

    def __init__(self, rule, message, details=None):
        super().__init__(message, details)
        self.rule = BusinessRule(rule)

    def as_dict(self):
        data = super().as_dict()
        data["rule"] = self.rule.value
        return data


class ConflictError(TicketError):
    """Raised when a concurrent mutation holds the ticket. Safe to retry the whole operation."""

    code = "CONFLICT"
    status_code = 409
