"""Error types raised by the Azure DevOps integration.

Input problems (configuration, validation, status labels, step XML) are detected
locally before any request is sent. Failures reported by Azure DevOps itself are
raised as UpstreamError with the original message preserved.
"""

from typing import Optional


class AzureDevOpsError(Exception):
    """Base class for all Azure DevOps integration errors."""


class InvalidConfiguration(AzureDevOpsError, ValueError):
    """Organization URL, token or project is missing or malformed."""


class InvalidToken(InvalidConfiguration):
    """Personal access token or bearer token failed validation."""


class ValidationError(AzureDevOpsError, ValueError):
    """A required input is missing or invalid."""


class UnknownStatus(AzureDevOpsError, ValueError):
    """A status code or label is outside the documented mapping."""


class MalformedStepXml(AzureDevOpsError, ValueError):
    """Test case steps XML could not be parsed."""


class NotFound(AzureDevOpsError, LookupError):
    """The requested entity does not exist."""


class NotInitialized(AzureDevOpsError, RuntimeError):
    """The integration could not be initialized."""


class UpstreamError(AzureDevOpsError):
    """Azure DevOps returned an error or could not be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        """Initialize the upstream error.

        Args:
            message: Error message, as reported by Azure DevOps where available
            status_code: HTTP status code of the failed response, if any
        """
        super().__init__(message)
        self.status_code = status_code


def upstream_failure(error: UpstreamError, operation: str) -> UpstreamError:
    """Prefix an upstream error with the operation that failed.

    Args:
        error: The error raised by the client
        operation: Short description of the operation, e.g. 'create bug'

    Returns:
        A new UpstreamError with the same status code and a descriptive message
    """
    status_code = error.status_code
    if status_code == 401:
        message = (
            f'Authentication failed while trying to {operation}. '
            'Please check your Personal Access Token.'
        )
    elif status_code == 403:
        message = (
            f'Access denied while trying to {operation}. Please check your permissions.'
        )
    elif status_code == 400:
        message = (
            f'Bad request while trying to {operation}. '
            f'Please check your input parameters: {error}'
        )
    else:
        message = f'Failed to {operation}: {error}'
    return UpstreamError(message, status_code=status_code)
