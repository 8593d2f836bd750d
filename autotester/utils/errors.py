from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class AutoTesterError(HTTPException):
    """Base error; the response body is {"detail": {"error", "code", ...extra}}."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"

    def __init__(self, message: str, **extra: Any):
        self.message = message
        self.extra = extra
        detail: Dict[str, Any] = {"error": message, "code": self.code, **extra}
        super().__init__(status_code=type(self).status_code, detail=detail)

    def __str__(self) -> str:
        return self.message


class InputInvalid(AutoTesterError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "input_invalid"


class Forbidden(AutoTesterError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFound(AutoTesterError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class InvalidTransition(AutoTesterError):
    status_code = status.HTTP_409_CONFLICT
    code = "invalid_transition"


class QuotaExceeded(AutoTesterError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "quota_exceeded"

    def __init__(self, limit: int, message: Optional[str] = None):
        self.limit = limit
        super().__init__(
            message
            or f"Daily AI usage limit ({limit}) reached. Please upgrade for unlimited access.",
            limit=limit,
            upgradeHint="Subscribe to a paid plan to remove the daily limit.",
        )


class UpstreamFailed(AutoTesterError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_failed"


class MalformedOutput(AutoTesterError):
    """The model answered, but not with a usable test plan. Carries the raw text."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "malformed_output"

    def __init__(self, reason: str, raw_ai_response: str):
        self.reason = reason
        self.raw_ai_response = raw_ai_response
        super().__init__(
            "Failed to generate valid test plan from AI. AI response was not "
            "parseable JSON or did not match expected structure.",
            reason=reason,
            rawAiResponse=raw_ai_response,
        )


class StorageError(AutoTesterError):
    code = "storage_error"
