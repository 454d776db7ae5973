"""Authentication and organization URL handling for Azure DevOps.

Accepts a personal access token (sent as HTTP Basic) or a 'Bearer <token>' value,
and normalizes both https://dev.azure.com/{org} and the legacy
https://{org}.visualstudio.com organization URLs.
"""

import base64
import re
from loguru import logger as default_logger
from tl.azure_devops_integration.client import RestAzureDevOpsClient
from tl.azure_devops_integration.errors import InvalidConfiguration, InvalidToken, ValidationError
from typing import Any, Dict, Optional


MIN_PAT_LENGTH = 20
BEARER_PREFIX = 'Bearer '

_LEGACY_URL = re.compile(r'^https://([^./]+)\.visualstudio\.com(?:/.*)?$', re.IGNORECASE)
_ORGANIZATION_URL = re.compile(r'^https://dev\.azure\.com/[^/]+$')
_PAT_CHARACTERS = re.compile(r'^[A-Za-z0-9+/=]+$')

_WEB_URL_PATTERNS = (
    (
        'pull_request',
        re.compile(
            r'https://dev\.azure\.com/([^/]+)/([^/]+)/_git/([^/]+)/pullrequest/(\d+)',
            re.IGNORECASE,
        ),
    ),
    (
        'work_item',
        re.compile(r'https://dev\.azure\.com/([^/]+)/([^/]+)/_workitems/edit/(\d+)', re.IGNORECASE),
    ),
    (
        'repository',
        re.compile(r'https://dev\.azure\.com/([^/]+)/([^/]+)/_git/([^/?#]+)', re.IGNORECASE),
    ),
)


def normalize_organization_url(url: str) -> str:
    """Return the canonical https://dev.azure.com/{org} form of an organization URL.

    Args:
        url: Organization URL, modern or legacy visualstudio.com form; a path
            after a legacy host, such as /DefaultCollection, is dropped

    Returns:
        URL without trailing slash in the dev.azure.com form

    Raises:
        InvalidConfiguration: If the URL is empty or matches neither form
    """
    if not url or not url.strip():
        raise InvalidConfiguration('Organization URL is required')

    url = url.strip().rstrip('/')

    legacy = _LEGACY_URL.match(url)
    if legacy:
        url = f'https://dev.azure.com/{legacy.group(1)}'

    if not _ORGANIZATION_URL.match(url):
        raise InvalidConfiguration(
            'Invalid organization URL. Expected format: https://dev.azure.com/organization'
        )
    return url


def validate_token(token: str) -> None:
    """Validate a personal access token or a 'Bearer <token>' value.

    Raises:
        InvalidConfiguration: If the token is empty
        InvalidToken: If a PAT is too short or contains invalid characters,
            or a bearer value carries no token
    """
    if not token or not token.strip():
        raise InvalidConfiguration('Personal Access Token is required')

    if token.startswith(BEARER_PREFIX):
        if not token[len(BEARER_PREFIX):].strip():
            raise InvalidToken('Bearer token is empty')
        return

    if len(token) < MIN_PAT_LENGTH:
        raise InvalidToken('Personal Access Token appears to be too short')
    if not _PAT_CHARACTERS.match(token):
        raise InvalidToken('Personal Access Token contains invalid characters')


def authorization_header(token: str) -> str:
    """Build the Authorization header value for a token."""
    if token.startswith(BEARER_PREFIX):
        return f'Bearer {token[len(BEARER_PREFIX):].strip()}'
    credentials = base64.b64encode(f':{token}'.encode()).decode()
    return f'Basic {credentials}'


def parse_azure_devops_url(url: str) -> Dict[str, Any]:
    """Split an Azure DevOps web URL into its parts.

    Recognizes pull request, work item and repository URLs.

    Returns:
        Mapping with 'type', 'organization', 'project' and the type-specific
        'repository', 'pull_request_id' or 'work_item_id'

    Raises:
        ValidationError: If the URL is not a recognized Azure DevOps URL
    """
    for url_type, pattern in _WEB_URL_PATTERNS:
        match = pattern.search(url or '')
        if not match:
            continue
        parsed: Dict[str, Any] = {
            'type': url_type,
            'organization': match.group(1),
            'project': match.group(2),
        }
        if url_type == 'pull_request':
            parsed['repository'] = match.group(3)
            parsed['pull_request_id'] = int(match.group(4))
        elif url_type == 'work_item':
            parsed['work_item_id'] = int(match.group(3))
        else:
            parsed['repository'] = match.group(3)
        return parsed

    raise ValidationError(f'Unable to parse Azure DevOps URL: {url}')


class AzureDevOpsAuth:
    """Validated credentials for one Azure DevOps organization.

    Construction performs no network I/O; the client handle is created on demand
    by create_client().
    """

    def __init__(self, organization_url: str, token: str, logger: Any = None) -> None:
        """Initialize Azure DevOps authentication.

        Args:
            organization_url: Organization URL (dev.azure.com or visualstudio.com form)
            token: Personal access token, or 'Bearer <token>'
            logger: Logger instance, defaults to the loguru logger bound to this component
        """
        self.logger = logger or default_logger.bind(component='auth')
        self.organization_url = normalize_organization_url(organization_url)
        validate_token(token)
        self._token = token
        self.headers = {
            'Authorization': authorization_header(token),
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        }
        self.logger.debug(f'Prepared credentials for organization: {self.organization_url}')

    @property
    def organization_name(self) -> str:
        return self.organization_url.rsplit('/', 1)[-1]

    @property
    def is_bearer(self) -> bool:
        return self._token.startswith(BEARER_PREFIX)

    def create_client(
        self,
        project: str,
        api_version: str = '7.1',
        timeout: int = 30,
        max_retries: int = 3,
        logger: Optional[Any] = None,
    ) -> RestAzureDevOpsClient:
        """Create a REST client handle authenticated with these credentials."""
        return RestAzureDevOpsClient(
            organization_url=self.organization_url,
            project=project,
            headers=self.headers,
            api_version=api_version,
            timeout=timeout,
            max_retries=max_retries,
            logger=logger,
        )
