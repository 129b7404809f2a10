"""Error taxonomy shared by every layer of the client core.

Three families:
- API layer (``ApiError``): exactly one subclass is raised per failed call.
- Credential layer (``CredentialError``): storage and lookup failures.
- Device-flow layer (``DeviceFlowError``): interactive login outcomes.
"""

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar


class ErrorKind(str, Enum):
    """Closed set of API failure classifications."""

    AUTH_REQUIRED = "auth_required"
    MISSING_SCOPE = "missing_scope"
    RATE_LIMITED = "rate_limited"
    HTTP = "http"
    TRANSPORT = "transport"
    DECODE = "decode"


class ApiError(Exception):
    """Base class for classified API failures."""

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str, *, sso_header: str | None = None) -> None:
        self.sso_header = sso_header
        super().__init__(message)


class AuthRequiredError(ApiError):
    """No usable credential for the host."""

    kind = ErrorKind.AUTH_REQUIRED

    def __init__(self, host: str, *, sso_header: str | None = None) -> None:
        self.host = host
        super().__init__(
            f"authentication required for {host}. "
            f"Run `ghc auth login -h {host}` or set the GH_TOKEN environment variable.",
            sso_header=sso_header,
        )


class MissingScopeError(ApiError):
    """The token lacks an OAuth scope the endpoint requires."""

    kind = ErrorKind.MISSING_SCOPE

    def __init__(self, scope: str, host: str, *, sso_header: str | None = None) -> None:
        self.scope = scope
        self.host = host
        super().__init__(
            f'This API operation needs the "{scope}" scope. '
            f"To request it, run:  ghc auth refresh -h {host} -s {scope}",
            sso_header=sso_header,
        )


class RateLimitedError(ApiError):
    """Primary or secondary rate limit hit."""

    kind = ErrorKind.RATE_LIMITED

    def __init__(self, reset_at: datetime, *, sso_header: str | None = None) -> None:
        self.reset_at = reset_at
        super().__init__(
            f"API rate limit exceeded. Resets at {reset_at.isoformat()}; "
            "wait until then or authenticate with a different account.",
            sso_header=sso_header,
        )


class HttpError(ApiError):
    """Any other non-2xx response."""

    kind = ErrorKind.HTTP

    def __init__(
        self,
        status: int,
        message: str,
        headers: dict[str, str] | None = None,
        *,
        url: str = "",
        sso_header: str | None = None,
    ) -> None:
        self.status = status
        self.message = message
        self.headers = headers or {}
        self.url = url
        text = f"HTTP {status}: {message}" if message else f"HTTP {status} (empty response body)"
        if url:
            text = f"{text} ({url})"
        super().__init__(text, sso_header=sso_header)

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class GraphQLError(HttpError):
    """GraphQL response carrying errors and no usable data."""

    def __init__(
        self,
        errors: list[dict[str, Any]],
        status: int = 200,
        headers: dict[str, str] | None = None,
        *,
        sso_header: str | None = None,
    ) -> None:
        self.errors = errors
        messages = [err.get("message", "Unknown error") for err in errors]
        super().__init__(
            status,
            f"GraphQL: {'; '.join(messages)}",
            headers,
            sso_header=sso_header,
        )


class TransportError(ApiError):
    """Connection-level failure before a response was obtained."""

    kind = ErrorKind.TRANSPORT

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"network error: {cause or type(cause).__name__}. Check your connection.")


class DecodeError(ApiError):
    """A successful response whose body did not match the expected shape."""

    kind = ErrorKind.DECODE

    def __init__(self, cause: BaseException) -> None:
        self.cause = cause
        super().__init__(f"failed to parse API response: {cause}")


class CredentialError(Exception):
    """Base class for credential storage failures."""


class CredentialNotFoundError(CredentialError):
    """No credential stored for the exact account."""

    def __init__(self, host: str, username: str) -> None:
        self.host = host
        self.username = username
        super().__init__(f"no credential stored for {username} on {host}")


class BackendUnavailableError(CredentialError):
    """The secure backend is absent on this platform or session."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"secure credential store unavailable: {reason}")


class WriteFailedError(CredentialError):
    """A backend accepted the request but could not persist the value."""

    def __init__(self, backend: str, cause: BaseException) -> None:
        self.backend = backend
        self.cause = cause
        super().__init__(f"failed to write credential to {backend}: {cause}")


class TokenNotWriteableError(CredentialError):
    """Stored credentials are shadowed by an environment variable."""

    def __init__(self, variable: str) -> None:
        self.variable = variable
        super().__init__(
            f"The value of the {variable} environment variable is being used for "
            "authentication. To manage credentials with ghc instead, first clear "
            "the value from the environment."
        )


class AccountSelectionError(CredentialError):
    """An operation needs an explicit account choice."""

    def __init__(self, host: str, candidates: list[str]) -> None:
        self.host = host
        self.candidates = candidates
        super().__init__(
            f"unable to determine which account on {host} to use "
            f"(candidates: {', '.join(candidates)}); please specify `--user`"
        )


class DeviceFlowError(Exception):
    """Base class for device authorization outcomes other than success."""


class DeviceFlowCancelled(DeviceFlowError):
    def __init__(self) -> None:
        super().__init__("authentication cancelled; no credentials were stored")


class DeviceFlowExpired(DeviceFlowError):
    def __init__(self) -> None:
        super().__init__("the device code expired before it was authorized. Run `ghc auth login` again.")


class DeviceFlowFailed(DeviceFlowError):
    """Request, protocol or identity lookup failure during login."""

    def __init__(self, reason: str, cause: BaseException | None = None) -> None:
        self.reason = reason
        self.cause = cause
        super().__init__(f"authentication failed: {reason}")
