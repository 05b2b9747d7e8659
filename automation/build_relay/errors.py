"""Failure classes for the build relay.

Only authentication, configuration and dispatch failures reach the caller.
Workspace lookups and annotations degrade to log lines instead.
"""

from __future__ import annotations


class RelayError(Exception):
    """Base class for relay failures."""


class AuthenticationError(RelayError):
    """Inbound signature did not verify against the configured secret."""


class ConfigurationError(RelayError):
    """A required destination setting is missing or the config file is invalid."""


class HttpCallError(RelayError):
    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class DispatchError(RelayError):
    def __init__(self, message: str, status: int | None = None, detail: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.detail = detail
