"""Client handle for the Azure DevOps REST API.

AzureDevOpsClient lists every backend call the entity managers make.
RestAzureDevOpsClient implements it over HTTP with requests; the payloads it
returns are the JSON documents of the REST API, unmodified.
"""

import requests
from abc import ABC, abstractmethod
from loguru import logger as default_logger
from requests.adapters import HTTPAdapter
from tl.azure_devops_integration.errors import NotFound, UpstreamError
from typing import Any, Dict, List, Mapping, Optional, Sequence
from urllib.parse import quote
from urllib3.util.retry import Retry


JsonPatchDocument = List[Dict[str, Any]]

# Work item batch reads are limited to 200 ids per request
WORK_ITEM_BATCH_SIZE = 200
COMMENTS_API_VERSION = '7.1-preview.4'


class AzureDevOpsClient(ABC):
    """Capabilities of an Azure DevOps backend used by the entity managers."""

    organization_url: str
    project: str

    # Work item tracking

    @abstractmethod
    def create_work_item(self, work_item_type: str, document: JsonPatchDocument) -> Dict[str, Any]:
        """Create a work item of the given type from a JSON-Patch document."""

    @abstractmethod
    def update_work_item(self, work_item_id: int, document: JsonPatchDocument) -> Dict[str, Any]:
        """Apply a JSON-Patch document to an existing work item."""

    @abstractmethod
    def get_work_item(self, work_item_id: int) -> Dict[str, Any]:
        """Fetch one work item with its relations."""

    @abstractmethod
    def get_work_items(self, work_item_ids: Sequence[int]) -> List[Dict[str, Any]]:
        """Fetch several work items, in the order the backend returns them."""

    @abstractmethod
    def delete_work_item(self, work_item_id: int, destroy: bool = False) -> Dict[str, Any]:
        """Delete a work item; destroy=True removes it permanently."""

    @abstractmethod
    def query_by_wiql(self, wiql: str) -> Dict[str, Any]:
        """Run a WIQL query and return the raw query result."""

    @abstractmethod
    def get_work_item_comments(self, work_item_id: int) -> List[Dict[str, Any]]:
        """List the discussion comments of a work item."""

    @abstractmethod
    def add_work_item_comment(self, work_item_id: int, text: str) -> Dict[str, Any]:
        """Add a discussion comment to a work item."""

    @abstractmethod
    def get_work_item_types(self) -> List[Dict[str, Any]]:
        """List the work item types of the project."""

    # Git

    @abstractmethod
    def get_pull_request(self, repository_id: str, pull_request_id: int) -> Dict[str, Any]:
        """Fetch a pull request."""

    @abstractmethod
    def get_pull_request_threads(
        self, repository_id: str, pull_request_id: int
    ) -> List[Dict[str, Any]]:
        """List the comment threads of a pull request."""

    @abstractmethod
    def create_pull_request_thread(
        self, repository_id: str, pull_request_id: int, thread: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Create a comment thread on a pull request."""

    @abstractmethod
    def update_pull_request_thread(
        self,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        thread: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Update a pull request comment thread (e.g. its status)."""

    @abstractmethod
    def create_pull_request_comment(
        self,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        comment: Mapping[str, Any],
    ) -> Dict[str, Any]:
        """Add a comment to an existing pull request thread."""

    @abstractmethod
    def get_pull_request_iterations(
        self, repository_id: str, pull_request_id: int
    ) -> List[Dict[str, Any]]:
        """List the iterations (pushes) of a pull request."""

    @abstractmethod
    def get_pull_request_iteration_commits(
        self, repository_id: str, pull_request_id: int, iteration_id: int
    ) -> List[Dict[str, Any]]:
        """List the commits of one pull request iteration."""

    @abstractmethod
    def get_pull_request_work_item_refs(
        self, repository_id: str, pull_request_id: int
    ) -> List[Dict[str, Any]]:
        """List work item references linked to a pull request."""

    @abstractmethod
    def get_repositories(self, project: Optional[str] = None) -> List[Dict[str, Any]]:
        """List Git repositories of a project."""

    # Test plans and builds

    @abstractmethod
    def get_test_plans(self) -> List[Dict[str, Any]]:
        """List the test plans of the project."""

    @abstractmethod
    def get_builds(self, top: int = 1) -> List[Dict[str, Any]]:
        """List the most recent builds of the project."""

    # Core

    @abstractmethod
    def get_projects(self) -> List[Dict[str, Any]]:
        """List projects of the organization."""

    @abstractmethod
    def get_connection_data(self) -> Dict[str, Any]:
        """Describe the authenticated connection."""

    def work_item_url(self, work_item_id: int) -> str:
        """REST URL of a work item, as used in relation links."""
        return f'{self.organization_url}/{quote(self.project, safe="")}/_apis/wit/workItems/{work_item_id}'

    def close(self) -> None:
        """Release resources held by the client."""


def _error_message(response: requests.Response) -> str:
    """Extract a human-readable error from an Azure DevOps response."""
    try:
        data = response.json()
    except ValueError:
        return response.text[:200] if response.text else f'HTTP {response.status_code}'
    if isinstance(data, dict):
        if data.get('message'):
            return str(data['message'])
        error = data.get('error')
        if isinstance(error, dict) and error.get('message'):
            return str(error['message'])
    return str(data)


class RestAzureDevOpsClient(AzureDevOpsClient):
    """Azure DevOps client over the REST API."""

    def __init__(
        self,
        organization_url: str,
        project: str,
        headers: Mapping[str, str],
        api_version: str = '7.1',
        timeout: int = 30,
        max_retries: int = 3,
        session: Optional[requests.Session] = None,
        logger: Any = None,
    ) -> None:
        """Initialize the REST client.

        Args:
            organization_url: Normalized organization URL, without trailing slash
            project: Project name
            headers: Default headers, including Authorization
            api_version: REST API version sent with every request
            timeout: Per-request timeout in seconds
            max_retries: Retries for throttled or failed requests
            session: Session to use instead of a new one
            logger: Logger instance, defaults to the loguru logger bound to this component
        """
        self.organization_url = organization_url.rstrip('/')
        self.project = project
        self.api_version = api_version
        self.timeout = timeout
        self.logger = logger or default_logger.bind(component='client')

        if session is None:
            session = requests.Session()
            retry = Retry(
                total=max_retries,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                raise_on_status=False,
            )
            adapter = HTTPAdapter(max_retries=retry)
            session.mount('http://', adapter)
            session.mount('https://', adapter)
        self.session = session
        self.session.headers.update(headers)

    def _org_url(self, path: str) -> str:
        return f'{self.organization_url}/_apis/{path}'

    def _project_url(self, path: str, project: Optional[str] = None) -> str:
        project_segment = quote(project or self.project, safe='')
        return f'{self.organization_url}/{project_segment}/_apis/{path}'

    def _repo_url(self, repository_id: str, path: str = '') -> str:
        base = self._project_url(f'git/repositories/{quote(str(repository_id), safe="")}')
        return f'{base}/{path}' if path else base

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
        api_version: Optional[str] = None,
    ) -> Any:
        query = {'api-version': api_version or self.api_version}
        if params:
            query.update(params)

        self.logger.debug(f'{method} {url}')
        try:
            response = self.session.request(
                method, url, params=query, json=json, headers=headers, timeout=self.timeout
            )
        except requests.exceptions.RequestException as e:
            raise UpstreamError(f'HTTP error while calling Azure DevOps: {str(e)}') from e

        # An expired or invalid PAT is redirected to the sign-in page
        if '/_signin' in (response.url or ''):
            raise UpstreamError('Authentication failed. Please check your Personal Access Token.', 401)
        if response.status_code == 404:
            raise NotFound(_error_message(response))
        if not response.ok:
            raise UpstreamError(_error_message(response), status_code=response.status_code)

        if not response.content:
            return {}
        if 'text/html' in (response.headers.get('Content-Type') or ''):
            raise UpstreamError(
                f'Unexpected HTML response from Azure DevOps (status {response.status_code})',
                status_code=response.status_code,
            )
        return response.json()

    # Work item tracking

    def create_work_item(self, work_item_type: str, document: JsonPatchDocument) -> Dict[str, Any]:
        url = self._project_url(f'wit/workitems/${quote(work_item_type, safe="")}')
        return self._request(
            'POST',
            url,
            params={'bypassRules': 'true'},
            json=document,
            headers={'Content-Type': 'application/json-patch+json'},
        )

    def update_work_item(self, work_item_id: int, document: JsonPatchDocument) -> Dict[str, Any]:
        return self._request(
            'PATCH',
            self._project_url(f'wit/workitems/{work_item_id}'),
            params={'bypassRules': 'true'},
            json=document,
            headers={'Content-Type': 'application/json-patch+json'},
        )

    def get_work_item(self, work_item_id: int) -> Dict[str, Any]:
        return self._request(
            'GET', self._project_url(f'wit/workitems/{work_item_id}'), params={'$expand': 'all'}
        )

    def get_work_items(self, work_item_ids: Sequence[int]) -> List[Dict[str, Any]]:
        work_items: List[Dict[str, Any]] = []
        ids = [str(work_item_id) for work_item_id in work_item_ids]
        for start in range(0, len(ids), WORK_ITEM_BATCH_SIZE):
            batch = ids[start : start + WORK_ITEM_BATCH_SIZE]
            data = self._request(
                'GET',
                self._project_url('wit/workitems'),
                params={'ids': ','.join(batch), '$expand': 'all'},
            )
            work_items.extend(data.get('value', []))
        return work_items

    def delete_work_item(self, work_item_id: int, destroy: bool = False) -> Dict[str, Any]:
        return self._request(
            'DELETE',
            self._project_url(f'wit/workitems/{work_item_id}'),
            params={'destroy': 'true' if destroy else 'false'},
        )

    def query_by_wiql(self, wiql: str) -> Dict[str, Any]:
        return self._request('POST', self._project_url('wit/wiql'), json={'query': wiql})

    def get_work_item_comments(self, work_item_id: int) -> List[Dict[str, Any]]:
        data = self._request(
            'GET',
            self._project_url(f'wit/workItems/{work_item_id}/comments'),
            api_version=COMMENTS_API_VERSION,
        )
        return data.get('comments', [])

    def add_work_item_comment(self, work_item_id: int, text: str) -> Dict[str, Any]:
        return self._request(
            'POST',
            self._project_url(f'wit/workItems/{work_item_id}/comments'),
            json={'text': text},
            api_version=COMMENTS_API_VERSION,
        )

    def get_work_item_types(self) -> List[Dict[str, Any]]:
        data = self._request('GET', self._project_url('wit/workitemtypes'))
        return data.get('value', [])

    # Git

    def get_pull_request(self, repository_id: str, pull_request_id: int) -> Dict[str, Any]:
        return self._request('GET', self._repo_url(repository_id, f'pullrequests/{pull_request_id}'))

    def get_pull_request_threads(
        self, repository_id: str, pull_request_id: int
    ) -> List[Dict[str, Any]]:
        data = self._request(
            'GET', self._repo_url(repository_id, f'pullRequests/{pull_request_id}/threads')
        )
        return data.get('value', [])

    def create_pull_request_thread(
        self, repository_id: str, pull_request_id: int, thread: Mapping[str, Any]
    ) -> Dict[str, Any]:
        return self._request(
            'POST',
            self._repo_url(repository_id, f'pullRequests/{pull_request_id}/threads'),
            json=dict(thread),
        )

    def update_pull_request_thread(
        self,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        thread: Mapping[str, Any],
    ) -> Dict[str, Any]:
        return self._request(
            'PATCH',
            self._repo_url(repository_id, f'pullRequests/{pull_request_id}/threads/{thread_id}'),
            json=dict(thread),
        )

    def create_pull_request_comment(
        self,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        comment: Mapping[str, Any],
    ) -> Dict[str, Any]:
        return self._request(
            'POST',
            self._repo_url(
                repository_id, f'pullRequests/{pull_request_id}/threads/{thread_id}/comments'
            ),
            json=dict(comment),
        )

    def get_pull_request_iterations(
        self, repository_id: str, pull_request_id: int
    ) -> List[Dict[str, Any]]:
        data = self._request(
            'GET', self._repo_url(repository_id, f'pullRequests/{pull_request_id}/iterations')
        )
        return data.get('value', [])

    def get_pull_request_iteration_commits(
        self, repository_id: str, pull_request_id: int, iteration_id: int
    ) -> List[Dict[str, Any]]:
        data = self._request(
            'GET',
            self._repo_url(
                repository_id,
                f'pullRequests/{pull_request_id}/iterations/{iteration_id}/commits',
            ),
        )
        return data.get('value', [])

    def get_pull_request_work_item_refs(
        self, repository_id: str, pull_request_id: int
    ) -> List[Dict[str, Any]]:
        data = self._request(
            'GET', self._repo_url(repository_id, f'pullRequests/{pull_request_id}/workitems')
        )
        return data.get('value', [])

    def get_repositories(self, project: Optional[str] = None) -> List[Dict[str, Any]]:
        data = self._request('GET', self._project_url('git/repositories', project=project))
        return data.get('value', [])

    # Test plans and builds

    def get_test_plans(self) -> List[Dict[str, Any]]:
        data = self._request('GET', self._project_url('testplan/plans'))
        return data.get('value', [])

    def get_builds(self, top: int = 1) -> List[Dict[str, Any]]:
        data = self._request('GET', self._project_url('build/builds'), params={'$top': top})
        return data.get('value', [])

    # Core

    def get_projects(self) -> List[Dict[str, Any]]:
        data = self._request('GET', self._org_url('projects'))
        return data.get('value', [])

    def get_connection_data(self) -> Dict[str, Any]:
        return self._request('GET', self._org_url('connectionData'), api_version='7.1-preview')

    def close(self) -> None:
        self.session.close()
