"""Domain error kinds.

Each kind is an HTTPException so the service layer can raise it directly and
FastAPI renders it; ``code`` is echoed in the response body so callers can
branch on the kind rather than the message.
"""

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse


class DomainError(HTTPException):
    status_code: int = 400
    code: str = "domain_error"

    def __init__(self, detail: str, headers: dict[str, str] | None = None) -> None:
        super().__init__(status_code=self.status_code, detail=detail, headers=headers)


class InvalidTransition(DomainError):
    status_code = 409
    code = "invalid_transition"


class Unauthorized(DomainError):
    status_code = 403
    code = "unauthorized"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class ValidationFailed(DomainError):
    status_code = 422
    code = "validation_failed"


class ConsistencyViolation(DomainError):
    """Money-handling invariant broken. Never caught and corrected."""

    status_code = 500
    code = "consistency_violation"


class GatewayUnavailable(DomainError):
    status_code = 503
    code = "gateway_unavailable"

    def __init__(self, detail: str = "Payment gateway unavailable, retry later", retry_after: int = 30) -> None:
        super().__init__(detail, headers={"Retry-After": str(retry_after)})


class GatewayRejected(DomainError):
    """Gateway answered but refused the request (bad account, invalid amount)."""

    status_code = 502
    code = "gateway_rejected"


class SignatureInvalid(DomainError):
    status_code = 401
    code = "signature_invalid"


class WebhookPayloadInvalid(DomainError):
    status_code = 400
    code = "webhook_payload_invalid"


class RateLimited(DomainError):
    status_code = 429
    code = "rate_limited"

    def __init__(self, detail: str = "Rate limit exceeded", retry_after: int = 60) -> None:
        super().__init__(detail, headers={"Retry-After": str(retry_after)})


class VaultError(DomainError):
    """Reveal failure. ``kind`` distinguishes the cause; detail never carries plaintext."""

    code = "vault_error"
    _STATUS = {
        "justification_required": 422,
        "missing_ciphertext": 404,
        "decryption_failed": 500,
        "invalid_value": 422,
        "key_unavailable": 500,
    }

    def __init__(self, kind: str) -> None:
        self.kind = kind
        self.status_code = self._STATUS.get(kind, 400)
        super().__init__(f"Sensitive field operation failed: {kind}")


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    body: dict[str, str] = {"detail": str(exc.detail), "code": exc.code}
    if isinstance(exc, VaultError):
        body["kind"] = exc.kind
    return JSONResponse(status_code=exc.status_code, content=body, headers=exc.headers)
