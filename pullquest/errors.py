"""
pullquest.errors — Structured Error Kinds
==========================================

Every failure a caller can act on is one of five kinds:

- ``validation``             — missing / malformed input (never retried)
- ``not_found``              — account, stake, issue or analysis absent
- ``insufficient_resources`` — coin balance too low (no partial debit)
- ``upstream_unavailable``   — issue source or database transiently failing
- ``conflict``               — settlement could not be applied consistently

Services raise these; the API renders them as
``{"error": kind, "code": code, "message": ..., "details": {...}}`` with the
status code carried on the class.
"""

from __future__ import annotations

from typing import Any


class PullQuestError(Exception):
    """Base class for all domain errors."""

    kind: str = "error"
    status_code: int = 500
    default_code: str = "error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.kind,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(PullQuestError):
    kind = "validation"
    status_code = 400
    default_code = "invalid_request"


class NotFoundError(PullQuestError):
    kind = "not_found"
    status_code = 404
    default_code = "not_found"


class InsufficientFundsError(PullQuestError):
    kind = "insufficient_resources"
    status_code = 400
    default_code = "insufficient_funds"


class UpstreamUnavailableError(PullQuestError):
    kind = "upstream_unavailable"
    status_code = 503
    default_code = "upstream_unavailable"


class SettlementConflictError(PullQuestError):
    """A settlement could not be applied to both the stake and the account.

    The transaction was rolled back; the event must be retried or reconciled.
    """

    kind = "conflict"
    status_code = 409
    default_code = "settlement_conflict"
