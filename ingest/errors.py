"""
Error types raised by the GitLab client.
HTTP failures are translated into one subclass per category so callers can tell a bad token
from a missing project without parsing messages.
"""

from typing import Optional


class ConfigurationError(Exception):
    """Base URL or access token missing or rejected; fatal before any run starts."""


class GitLabError(Exception):
    """Any failed GitLab lookup. The pipeline treats all subclasses as 'lookup failed'."""

    category = 'unknown'

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class AuthenticationError(GitLabError):
    category = 'auth'


class PermissionDeniedError(GitLabError):
    category = 'permission'


class NotFoundError(GitLabError):
    category = 'not_found'


class RateLimitError(GitLabError):
    category = 'rate_limit'


class ServerError(GitLabError):
    category = 'server_error'


class NetworkError(GitLabError):
    category = 'network'


class RequestTimeoutError(GitLabError):
    category = 'timeout'


class GitLabAPIError(GitLabError):
    category = 'api'


class PayloadError(GitLabError):
    """A response (or cached copy) did not have the expected shape."""

    category = 'payload'


# failures that say something about the whole run rather than one item
SYSTEMIC_ERRORS = (AuthenticationError, PermissionDeniedError, NetworkError, RequestTimeoutError, ServerError)


def error_for_status(status: int, reason: str = '') -> GitLabError:
    """Map a non-2xx HTTP status to the matching GitLabError."""
    if status == 401:
        return AuthenticationError(
            'Authentication failed: the access token is invalid or expired. Check that it has read_user or api scope.', status
        )
    if status == 403:
        return PermissionDeniedError('Permission denied: the access token cannot read this resource. It needs read_user or api scope.', status)
    if status == 404:
        return NotFoundError('Not found: the user or requested resource does not exist on this GitLab instance.', status)
    if status == 429:
        return RateLimitError('Rate limited: the GitLab API request limit was reached, try again later.', status)
    if status in (500, 502, 503, 504):
        return ServerError(f'GitLab server error ({status}): the server is temporarily unavailable, try again later.', status)
    return GitLabAPIError(f'GitLab API error ({status}): {reason}'.rstrip(': '), status)


__all__ = [
    "ConfigurationError",
    "GitLabError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "RateLimitError",
    "ServerError",
    "NetworkError",
    "RequestTimeoutError",
    "GitLabAPIError",
    "PayloadError",
    "SYSTEMIC_ERRORS",
    "error_for_status",
]
