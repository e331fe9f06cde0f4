"""Error catalog for the buyback engine.

Every failure the engine surfaces is one of a closed set of coded errors,
each with a fixed human-readable message. Errors are serializable so they can
be written to logs or returned by the CLI as JSON.
"""

import json
from typing import Any, Dict, Mapping, Optional


class EngineError(Exception):
    """Base class for buyback engine errors."""

    code: str = "SBE_ERROR"
    default_message: str = "Buyback engine error"

    def __init__(self, message: str = "", *, details: Optional[Mapping[str, Any]] = None) -> None:
        self.message = message or self.default_message
        self.details = dict(details or {})
        super().__init__(self.__str__())

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}

    def __str__(self) -> str:
        if self.details:
            packed = json.dumps(self.details, sort_keys=True, separators=(",", ":"), default=str)
            return f"{self.code}: {self.message} [{packed}]"
        return f"{self.code}: {self.message}"


class ScheduleNotSatisfied(EngineError):
    """Neither the interval nor the balance threshold is met.

    ``execute`` reports ineligibility as a ``Skipped`` outcome; this error is
    only raised by callers that ask for strict checking.
    """

    code = "SBE_SCHEDULE_NOT_SATISFIED"
    default_message = "Schedule conditions not met"


class InvalidRoutingConfig(EngineError):
    """Routing weights are structurally invalid or sum above 10000 bps."""

    code = "SBE_INVALID_ROUTING_CONFIG"
    default_message = "Invalid routing configuration"


class Unauthorized(EngineError):
    """Caller identity does not match the record's authority."""

    code = "SBE_UNAUTHORIZED"
    default_message = "Unauthorized caller"


class ExecutionAlreadyPerformed(EngineError):
    """A concurrent commit already claimed this execution window."""

    code = "SBE_EXECUTION_ALREADY_PERFORMED"
    default_message = "Execution already performed in this window"


class StateNotFound(EngineError):
    code = "SBE_STATE_NOT_FOUND"
    default_message = "Engine state not found"


class InsufficientTreasuryBalance(EngineError):
    code = "SBE_INSUFFICIENT_TREASURY"
    default_message = "Treasury balance cannot cover allocation"


ERROR_MESSAGES: Dict[str, str] = {
    cls.code: cls.default_message
    for cls in (
        ScheduleNotSatisfied,
        InvalidRoutingConfig,
        Unauthorized,
        ExecutionAlreadyPerformed,
        StateNotFound,
        InsufficientTreasuryBalance,
    )
}
