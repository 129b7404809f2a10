"""OAuth device authorization grant.

States::

    IDLE -> REQUESTING -> AWAITING_USER <-> POLLING
                                  \\-> SUCCEEDED | CANCELLED | EXPIRED | FAILED

The flow never stores credentials. On success it hands the token and the
username back to the caller, which decides where to persist them.
"""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, Field, ValidationError

from ghc_api.auth.credentials import Credential
from ghc_api.config import OAuthConfig
from ghc_api.errors import (
    ApiError,
    DecodeError,
    DeviceFlowCancelled,
    DeviceFlowExpired,
    DeviceFlowFailed,
    HttpError,
    TransportError,
)
from ghc_api.github.scopes import parse_scopes
from ghc_api.instance import access_token_url, device_code_url, normalize_hostname

if TYPE_CHECKING:
    from ghc_api.github.http import TransportClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"


class FlowState(str, Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    AWAITING_USER = "awaiting_user"
    POLLING = "polling"
    SUCCEEDED = "succeeded"
    CANCELLED = "cancelled"
    EXPIRED = "expired"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (FlowState.SUCCEEDED, FlowState.CANCELLED, FlowState.EXPIRED, FlowState.FAILED)


class DeviceCodeResponse(BaseModel):
    """Reply from the device code endpoint."""

    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int = Field(gt=0)
    interval: int = Field(default=5, ge=0)


class AccessTokenResponse(BaseModel):
    """Reply from the token endpoint: either a token or an error code."""

    access_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    error: str | None = None
    error_description: str | None = None
    interval: int | None = None


@dataclass
class DeviceSession:
    """One device code, valid until ``expires_at`` on the flow's clock."""

    host: str
    device_code: str = field(repr=False)
    user_code: str
    verification_uri: str
    interval: float
    expires_at: float


@dataclass(frozen=True)
class DeviceAuthResult:
    credential: Credential
    username: str
    scopes: list[str]


CodeCallback = Callable[[DeviceSession], Awaitable[None] | None]


class DeviceAuthFlow:
    """Drives one device authorization attempt at a time.

    ``clock`` and ``sleep`` are injectable so polling can be tested without
    waiting. :meth:`cancel` interrupts a pending sleep or request right away.
    """

    def __init__(
        self,
        transport: "TransportClient",
        oauth_config: OAuthConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._transport = transport
        self._config = oauth_config or OAuthConfig()
        self._clock = clock
        self._sleep = sleep
        self._cancel = asyncio.Event()
        self._state = FlowState.IDLE
        self._session: DeviceSession | None = None
        self._waiting = False
        self.polls = 0

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def session(self) -> DeviceSession | None:
        return self._session

    def cancel(self) -> None:
        """Request cancellation. Safe to call from any state.

        An idle flow finishes as CANCELLED right away and a finished flow is
        left as it is. :meth:`start` always begins a fresh attempt.
        """
        if self._state.is_terminal:
            return
        self._cancel.set()
        if self._state is FlowState.IDLE or (self._state is FlowState.AWAITING_USER and not self._waiting):
            self._finish(FlowState.CANCELLED)

    def _finish(self, state: FlowState) -> None:
        self._state = state
        self._session = None
        logger.debug("Device flow finished: %s", state.value)

    async def _until_cancelled(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless cancellation is requested first.

        Raises:
            DeviceFlowCancelled: If :meth:`cancel` was called before or
                while waiting.
        """
        if self._cancel.is_set():
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            raise DeviceFlowCancelled()

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()

        if self._cancel.is_set():
            if task.done() and not task.cancelled():
                # result is discarded once cancelled
                task.exception()
            raise DeviceFlowCancelled()
        return task.result()

    async def start(self, host: str, scopes: list[str] | None = None) -> DeviceSession:
        """Request a device and user code pair.

        Raises:
            DeviceFlowFailed: If the request fails or the reply is malformed.
            RuntimeError: If an attempt is already in progress.
        """
        if self._state in (FlowState.REQUESTING, FlowState.AWAITING_USER, FlowState.POLLING):
            msg = f"device flow already in progress ({self._state.value})"
            raise RuntimeError(msg)

        host = normalize_hostname(host)
        self._cancel.clear()
        self.polls = 0
        self._session = None
        self._state = FlowState.REQUESTING

        requested = scopes if scopes is not None else self._config.default_scopes
        form = {"client_id": self._config.client_id, "scope": " ".join(requested)}
        try:
            response = await self._until_cancelled(
                self._transport.post_form(host, device_code_url(host), form)
            )
            code = DeviceCodeResponse.model_validate(response.data)
        except (DeviceFlowCancelled, asyncio.CancelledError):
            self._finish(FlowState.CANCELLED)
            raise
        except ApiError as e:
            self._finish(FlowState.FAILED)
            raise DeviceFlowFailed(f"could not request a device code from {host}", e) from e
        except ValidationError as e:
            self._finish(FlowState.FAILED)
            raise DeviceFlowFailed("unexpected device code response", e) from e

        self._session = DeviceSession(
            host=host,
            device_code=code.device_code,
            user_code=code.user_code,
            verification_uri=code.verification_uri,
            interval=max(float(code.interval), self._config.min_poll_interval),
            expires_at=self._clock() + code.expires_in,
        )
        self._state = FlowState.AWAITING_USER
        logger.debug("Device code issued for %s, polling every %.0fs", host, self._session.interval)
        return self._session

    async def wait_for_token(self) -> DeviceAuthResult:
        """Poll until the user authorizes, then look up the username.

        Raises:
            DeviceFlowCancelled: If :meth:`cancel` was called.
            DeviceFlowExpired: If the device code expired first.
            DeviceFlowFailed: On a terminal error reply, a malformed reply or
                a failed username lookup.
        """
        if self._state is FlowState.CANCELLED:
            raise DeviceFlowCancelled()
        session = self._session
        if session is None or self._state is not FlowState.AWAITING_USER:
            msg = f"no device code awaiting authorization ({self._state.value})"
            raise RuntimeError(msg)

        self._waiting = True
        try:
            token = await self._poll(session)
            credential = Credential.from_token(token.access_token or "", origin="device-flow")
            try:
                username = await self._until_cancelled(self._transport.current_login(session.host, credential))
            except ApiError as e:
                raise DeviceFlowFailed("could not look up the authenticated user", e) from e
        except (DeviceFlowCancelled, asyncio.CancelledError):
            self._finish(FlowState.CANCELLED)
            raise
        except DeviceFlowExpired:
            self._finish(FlowState.EXPIRED)
            raise
        except DeviceFlowFailed:
            self._finish(FlowState.FAILED)
            raise
        finally:
            self._waiting = False

        self._finish(FlowState.SUCCEEDED)
        return DeviceAuthResult(credential, username, parse_scopes(token.scope))

    async def _poll(self, session: DeviceSession) -> AccessTokenResponse:
        form = {
            "client_id": self._config.client_id,
            "device_code": session.device_code,
            "grant_type": GRANT_TYPE,
        }
        url = access_token_url(session.host)

        while True:
            remaining = session.expires_at - self._clock()
            if remaining <= 0:
                raise DeviceFlowExpired()
            await self._until_cancelled(self._sleep(min(session.interval, remaining)))
            if self._clock() >= session.expires_at:
                raise DeviceFlowExpired()

            self._state = FlowState.POLLING
            self.polls += 1
            try:
                response = await self._until_cancelled(self._transport.post_form(session.host, url, form))
                reply = AccessTokenResponse.model_validate(response.data)
            except TransportError as e:
                logger.debug("Polling for device authorization failed, retrying: %s", e)
                self._state = FlowState.AWAITING_USER
                continue
            except DecodeError as e:
                raise DeviceFlowFailed("unexpected token response", e) from e
            except ValidationError as e:
                raise DeviceFlowFailed("unexpected token response", e) from e
            except HttpError as e:
                reply = _error_reply(e)
                if reply is None:
                    raise DeviceFlowFailed(str(e), e) from e
            except ApiError as e:
                raise DeviceFlowFailed(str(e), e) from e

            if reply.access_token:
                return reply

            if reply.error in (None, "authorization_pending"):
                pass
            elif reply.error == "slow_down":
                session.interval = float(reply.interval or session.interval + self._config.slow_down_increment)
                logger.debug("Server asked to slow down; polling every %.0fs", session.interval)
            elif reply.error == "expired_token":
                raise DeviceFlowExpired()
            elif reply.error == "access_denied":
                raise DeviceFlowFailed("authorization was denied by the user")
            else:
                detail = f"{reply.error}: {reply.error_description}" if reply.error_description else reply.error
                raise DeviceFlowFailed(detail)
            self._state = FlowState.AWAITING_USER

    async def run(
        self,
        host: str,
        scopes: list[str] | None = None,
        on_code: CodeCallback | None = None,
    ) -> DeviceAuthResult:
        """Run a complete attempt: request a code, show it, wait for the token."""
        session = await self.start(host, scopes)
        if on_code is not None:
            shown = on_code(session)
            if inspect.isawaitable(shown):
                await shown
        return await self.wait_for_token()


def _error_reply(error: HttpError) -> AccessTokenResponse | None:
    """Token endpoint error code carried by a non-2xx reply (RFC 8628 uses 400)."""
    try:
        reply = AccessTokenResponse.model_validate_json(error.message)
    except ValidationError:
        return None
    return reply if reply.error else None
