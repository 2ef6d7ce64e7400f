"""Error taxonomy shared by the pipeline and household management."""

from __future__ import annotations

from typing import Any, Dict, Optional


class HomegateError(RuntimeError):
    code = "homegate-error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}


class ParseAmbiguous(HomegateError):
    """No action could be derived from the text."""

    code = "parse-ambiguous"


class PolicyDenied(HomegateError):
    code = "policy-denied"

    def __init__(self, message: str, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, details)
        self.reason = reason


class BackendUnavailable(HomegateError):
    """Remote transport failed; recovered through the local backend."""

    code = "backend-unavailable"


class BackendRejected(HomegateError):
    """Every backend refused the operation."""

    code = "backend-rejected"


ERRORS_BY_CODE = {
    cls.code: cls for cls in (ParseAmbiguous, PolicyDenied, BackendUnavailable, BackendRejected)
}
