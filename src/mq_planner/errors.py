"""Exceptions raised by the queue store and the distribution service.

Capacity overruns are never an error: an overloaded machine is reported
through its capacity status and planning still goes ahead.
"""
from __future__ import annotations

from typing import Any


class DistributionError(Exception):
    code = "distribution_error"

    def __init__(self, msg: str, **detail: Any):
        super().__init__(msg)
        self.msg = msg
        self.detail = detail

    def to_dict(self) -> dict:
        return {"msg": self.msg, "code": self.code, **self.detail}


class ValidationError(DistributionError):
    """Bad algorithm id, bad weight, malformed position."""

    code = "validation_error"


class InvalidPositionError(ValidationError):
    code = "invalid_position"


class DuplicateAssignmentError(DistributionError):
    """The production order already has a queue entry on some machine."""

    code = "duplicate_assignment"


class NotFoundError(DistributionError):
    code = "not_found"
