"""OAuth scope handling.

GitHub reports the scopes a classic token carries in ``X-OAuth-Scopes`` and
the scopes an endpoint accepts in ``X-Accepted-OAuth-Scopes``. Fine-grained
and GitHub App tokens report no scopes at all.
"""

from collections.abc import Iterable

# Scopes granted implicitly by a broader scope
IMPLIED_SCOPES: dict[str, tuple[str, ...]] = {
    "repo": ("repo:status", "repo_deployment", "public_repo", "repo:invite", "security_events"),
    "user": ("read:user", "user:email", "user:follow"),
    "codespace": ("codespace:secrets",),
}

ORG_SCOPES = ("read:org", "write:org", "admin:org")


def parse_scopes(header: str | None) -> list[str]:
    """Split a comma-separated scopes header, dropping blanks."""
    if not header:
        return []
    return [s.strip() for s in header.split(",") if s.strip()]


def expand_implied(scopes: Iterable[str]) -> set[str]:
    """Return ``scopes`` plus every scope they imply."""
    expanded: set[str] = set()
    for scope in scopes:
        expanded.add(scope)
        expanded.update(IMPLIED_SCOPES.get(scope, ()))
        if scope.startswith("admin:"):
            rest = scope.removeprefix("admin:")
            expanded.update((f"read:{rest}", f"write:{rest}"))
        elif scope.startswith("write:"):
            expanded.add(f"read:{scope.removeprefix('write:')}")
    return expanded


def missing_scopes(required: Iterable[str], granted: Iterable[str]) -> list[str]:
    """Required scopes not covered by ``granted``, sorted lexicographically."""
    have = expand_implied(granted)
    return sorted({s for s in required if s and s not in have})


def first_missing_scope(required: Iterable[str], granted: Iterable[str]) -> str | None:
    missing = missing_scopes(required, granted)
    return missing[0] if missing else None


def check_minimum_scopes(granted: Iterable[str]) -> list[str]:
    """Scopes ``ghc`` needs for everyday use that ``granted`` lacks.

    An empty ``granted`` means a token whose scopes can't be inspected, so
    nothing is reported missing.
    """
    have = set(granted)
    if not have:
        return []
    missing = []
    if "repo" not in have:
        missing.append("repo")
    if not have.intersection(ORG_SCOPES):
        missing.append("read:org")
    return missing


def expects_scopes(token: str) -> bool:
    """Classic PATs and OAuth tokens report scopes; other token kinds don't."""
    return token.startswith(("ghp_", "gho_"))
