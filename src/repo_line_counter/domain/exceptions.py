"""Domain exception hierarchy.

Each exception maps to a specific HTTP status code at the interface layer.
Inner layers raise these; the outermost error-handler translates them.
"""

from __future__ import annotations


class LineCounterError(Exception):
    """Base exception for the entire application."""


# ── Input validation ────────────────────────────────────────────────────────


class InvalidRepositoryUrlError(LineCounterError):
    """The supplied URL is malformed or points outside the allowed providers."""


# ── Limits ──────────────────────────────────────────────────────────────────


class RepositoryTooLargeError(LineCounterError):
    """The repository exceeded the configured transfer or checkout ceiling."""


class RateLimitExceededError(LineCounterError):
    """The client sent too many requests within the current window."""


class ResourceExhaustedError(LineCounterError):
    """File descriptors stayed exhausted after every retry."""


# ── Fetch errors ────────────────────────────────────────────────────────────


class RepositoryFetchError(LineCounterError):
    """Network, protocol or remote failure while cloning the repository."""


class RepositoryNotFoundError(RepositoryFetchError):
    """The repository does not exist or is not publicly readable."""


class EmptyRepositoryError(RepositoryFetchError):
    """The repository exists but advertises no commits."""
