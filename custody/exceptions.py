# custody/exceptions.py
from __future__ import annotations

from rest_framework import status
from rest_framework.exceptions import APIException


class CustodyError(APIException):
    """Base for workflow errors surfaced to API callers."""

    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed."
    default_code = "custody_error"


class NotFoundError(CustodyError):
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Referenced entity does not exist."
    default_code = "not_found"


class ConflictError(CustodyError):
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Entity state conflicts with this operation."
    default_code = "conflict"


class ValidationError(CustodyError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid payload."
    default_code = "invalid"


class ForbiddenError(CustodyError):
    status_code = status.HTTP_403_FORBIDDEN
    default_detail = "Operation not allowed in the current state."
    default_code = "forbidden"


class InvalidTransitionError(CustodyError):
    """
    Requested status is not a reachable successor of the current one.

    The response body names the current and attempted states so a client
    can explain the rejection without re-querying.
    """

    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "invalid_transition"

    def __init__(self, kind: str, current: str, target: str, message: str | None = None):
        self.kind = kind
        self.current = current
        self.target = target
        msg = message or f"Invalid {kind} transition: {current} -> {target}"
        super().__init__(
            detail={
                "status": msg,
                "kind": kind,
                "current": current,
                "target": target,
            }
        )
