"""GitHub API transport, error classification and helpers."""

from ghc_api.github.classify import classify_request_error, classify_response, error_message
from ghc_api.github.graphql import VIEWER_LOGIN_QUERY
from ghc_api.github.http import ApiResponse, TokenAuth, TransportClient, parse_sso_url
from ghc_api.github.ratelimit import RateLimitInfo
from ghc_api.github.rest import Page, parse_link_header
from ghc_api.github.scopes import check_minimum_scopes, expand_implied, missing_scopes, parse_scopes

__all__ = [
    # HTTP Client
    "ApiResponse",
    "Page",
    "RateLimitInfo",
    "TokenAuth",
    "TransportClient",
    # GraphQL
    "VIEWER_LOGIN_QUERY",
    # Error classification
    "check_minimum_scopes",
    "classify_request_error",
    "classify_response",
    "error_message",
    "expand_implied",
    "missing_scopes",
    "parse_link_header",
    "parse_scopes",
    "parse_sso_url",
]
