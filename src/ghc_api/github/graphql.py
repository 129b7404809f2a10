"""GraphQL request and response shapes."""

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel

from ghc_api.errors import DecodeError, GraphQLError

logger = logging.getLogger(__name__)

FEATURES_HEADER = "GraphQL-Features"

VIEWER_LOGIN_QUERY = "query UserCurrent { viewer { login } }"


class ViewerLogin(BaseModel):
    """Payload of :data:`VIEWER_LOGIN_QUERY`."""

    class _Viewer(BaseModel):
        login: str

    viewer: _Viewer


def build_payload(query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"query": query}
    if variables:
        payload["variables"] = variables
    return payload


def features_header(features: Sequence[str]) -> dict[str, str]:
    """Capability negotiation header; empty when no features are enabled."""
    if not features:
        return {}
    return {FEATURES_HEADER: ", ".join(features)}


def split_body(body: Any, status: int = 200, headers: dict[str, str] | None = None) -> tuple[Any, list[dict[str, Any]]]:
    """Separate ``data`` from ``errors`` in a decoded GraphQL body.

    Raises:
        DecodeError: If the body isn't a GraphQL response object.
        GraphQLError: If the server reported errors and returned no data.
    """
    if not isinstance(body, dict):
        raise DecodeError(ValueError("GraphQL response is not a JSON object"))

    errors = body.get("errors") or []
    if not isinstance(errors, list):
        errors = [{"message": str(errors)}]
    data = body.get("data")

    if data is None:
        if errors:
            logger.debug("GraphQL errors: %s", errors)
            raise GraphQLError(errors, status, headers)
        raise DecodeError(ValueError("GraphQL response has no data"))

    return data, errors
