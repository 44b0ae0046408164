"""Value objects — self-validating domain primitives."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import urlsplit

from repo_line_counter.domain.exceptions import InvalidRepositoryUrlError

_ALLOWED_SCHEMES = frozenset({"http", "https"})


@dataclass(frozen=True, slots=True)
class SourceLocation:
    """Validated repository URL on an allow-listed host.

    The host check runs against the *parsed* hostname, so tricks such as
    ``https://github.com@evil.example.com/`` or ``https://evil.example.com/github.com``
    are rejected.
    """

    url: str
    scheme: str
    host: str
    path: str
    port: int | None = None

    @classmethod
    def from_string(cls, raw: str | None, allowed_hosts: Iterable[str]) -> SourceLocation:
        """Parse and validate a raw URL string."""
        url = (raw or "").strip()
        if not url:
            raise InvalidRepositoryUrlError("Repository URL is required")

        try:
            parts = urlsplit(url)
            host = parts.hostname
            port = parts.port
        except ValueError as exc:
            raise InvalidRepositoryUrlError("Invalid URL provided") from exc

        if not parts.scheme:
            raise InvalidRepositoryUrlError("Invalid URL provided")

        if parts.scheme.lower() not in _ALLOWED_SCHEMES:
            raise InvalidRepositoryUrlError(
                "Invalid protocol. Only HTTP/HTTPS are allowed."
            )

        if not parts.netloc:
            raise InvalidRepositoryUrlError("Invalid URL provided")

        allowed = [h.strip().lower() for h in allowed_hosts if h.strip()]
        if not host or host.lower() not in allowed:
            raise InvalidRepositoryUrlError(
                f"Domain not allowed. Supported providers: {', '.join(allowed)}"
            )

        return cls(
            url=url,
            scheme=parts.scheme.lower(),
            host=host.lower(),
            path=parts.path,
            port=port,
        )

    @property
    def clone_url(self) -> str:
        """Base URL for git smart-HTTP requests (no query, fragment or trailing slash)."""
        path = self.path.rstrip("/")
        netloc = self.host if self.port is None else f"{self.host}:{self.port}"
        return f"{self.scheme}://{netloc}{path}"

    def __str__(self) -> str:
        return self.url
