"""Integration facade composing authentication, the client and the entity managers.

The facade starts uninitialized. Every operation initializes it on first use;
initialization builds the authenticated client handle and the three managers
exactly once, even when several threads call in concurrently.
"""

import logfire
import threading
from loguru import logger as default_logger
from tl.azure_devops_integration.auth import AzureDevOpsAuth
from tl.azure_devops_integration.client import AzureDevOpsClient
from tl.azure_devops_integration.config import AzureDevOpsConfig
from tl.azure_devops_integration.errors import AzureDevOpsError, NotFound, NotInitialized, UpstreamError
from tl.azure_devops_integration.models import Record
from tl.azure_devops_integration.pull_requests import PullRequestManager
from tl.azure_devops_integration.testcases import TestCaseManager
from tl.azure_devops_integration.work_items import WorkItemManager
from typing import Any, Callable, List, Optional, Sequence


ClientFactory = Callable[[AzureDevOpsConfig, Any], AzureDevOpsClient]

# Client call that checks each permission area
PERMISSION_CHECKS = {
    'Work Items': 'get_work_item_types',
    'Git': 'get_repositories',
    'Test Management': 'get_test_plans',
    'Build': 'get_builds',
}
DEFAULT_PERMISSION_AREAS = ('Work Items', 'Git', 'Test Management')


def rest_client_factory(config: AzureDevOpsConfig, logger: Any) -> AzureDevOpsClient:
    """Build the REST client for a configuration."""
    auth = AzureDevOpsAuth(config.organization_url, config.personal_access_token, logger=logger)
    return auth.create_client(
        config.project,
        api_version=config.api_version,
        timeout=config.timeout,
        max_retries=config.max_retries,
        logger=logger.bind(component='client'),
    )


class AzureDevOpsIntegration:
    """Single entry point to work items, test cases and pull requests."""

    def __init__(
        self,
        config: Optional[AzureDevOpsConfig] = None,
        client_factory: Optional[ClientFactory] = None,
        logger: Any = None,
    ) -> None:
        """Initialize the facade without touching the network.

        Args:
            config: Connection settings, read from the environment on first use if omitted
            client_factory: Builds the client handle from the configuration
            logger: Logger instance, defaults to the loguru logger bound to this component
        """
        self.config = config
        self.client_factory = client_factory or rest_client_factory
        self.logger = logger or default_logger.bind(component='integration')
        self.client: Optional[AzureDevOpsClient] = None
        self.work_items: Optional[WorkItemManager] = None
        self.test_cases: Optional[TestCaseManager] = None
        self.pull_requests: Optional[PullRequestManager] = None
        self._lock = threading.Lock()

    @property
    def is_initialized(self) -> bool:
        return self.client is not None

    def initialize(self) -> bool:
        """Build the client handle and the managers; no-op when already initialized.

        Raises:
            AzureDevOpsError: If the configuration is missing or invalid
        """
        with self._lock:
            if self.client is not None:
                return True

            config = self.config or AzureDevOpsConfig.from_env()
            config.validate()

            client = self.client_factory(config, self.logger.bind(component='auth'))
            self.work_items = WorkItemManager(
                client, config.user_story_type, self.logger.bind(component='work_items')
            )
            self.test_cases = TestCaseManager(
                client, config.user_story_type, self.logger.bind(component='testcases')
            )
            self.pull_requests = PullRequestManager(
                client, self.logger.bind(component='pull_requests')
            )
            self.config = config
            self.client = client

        self.logger.info(f'Initialized Azure DevOps integration for project {config.project}')
        logfire.info(
            'Initialized Azure DevOps integration',
            organization_url=config.organization_url,
            project=config.project,
        )
        return True

    def _ensure_initialized(self) -> None:
        if self.client is not None:
            return
        try:
            self.initialize()
        except AzureDevOpsError as e:
            self.logger.error(f'Failed to initialize Azure DevOps integration: {str(e)}')
            raise NotInitialized(f'Failed to initialize Azure DevOps integration: {str(e)}') from e

    def _component(self, name: str) -> Any:
        """Initialize on first use and return the client or a manager, read under the lock.

        Raises:
            NotInitialized: If initialization fails or the facade was disposed meanwhile
        """
        self._ensure_initialized()
        with self._lock:
            component = getattr(self, name)
        if component is None:
            raise NotInitialized('Azure DevOps integration was disposed')
        return component

    def dispose(self) -> None:
        """Close the client handle and return to the uninitialized state."""
        with self._lock:
            client = self.client
            self.client = None
            self.work_items = None
            self.test_cases = None
            self.pull_requests = None
        if client is not None:
            client.close()
            self.logger.info('Azure DevOps integration disposed')

    def refresh(self) -> bool:
        """Dispose of the current handle and initialize again."""
        self.dispose()
        return self.initialize()

    # Connection

    def test_connection(self) -> Record:
        """Check that the organization is reachable with the configured credentials.

        Authentication, permission and missing-organization failures are raised;
        any other upstream failure is reported as success=False.
        """
        client = self._component('client')
        try:
            projects = client.get_projects()
        except NotFound:
            raise NotFound('Organization not found. Please check your organization URL.')
        except UpstreamError as e:
            if e.status_code == 401:
                raise UpstreamError(
                    'Authentication failed. Please check your Personal Access Token.', 401
                )
            if e.status_code == 403:
                raise UpstreamError(
                    'Access denied. Please ensure your PAT has the required permissions.', 403
                )
            self.logger.error(f'Connection test failed: {str(e)}')
            return Record(success=False, error=str(e))

        self.logger.info(f'Connection successful, found {len(projects)} projects')
        return Record(
            success=True,
            project_count=len(projects),
            projects=[
                {'id': p.get('id'), 'name': p.get('name'), 'description': p.get('description')}
                for p in projects
            ],
        )

    def get_organization_info(self) -> Record:
        client = self._component('client')
        try:
            projects = client.get_projects()
        except UpstreamError as e:
            raise UpstreamError(f'Failed to retrieve organization info: {str(e)}', e.status_code)

        organization_url = client.organization_url
        return Record(
            name=organization_url.rstrip('/').rsplit('/', 1)[-1],
            url=organization_url,
            project_count=len(projects),
            projects=[
                {
                    'id': p.get('id'),
                    'name': p.get('name'),
                    'description': p.get('description'),
                    'state': p.get('state'),
                    'visibility': p.get('visibility'),
                }
                for p in projects
            ],
        )

    def get_connection_info(self) -> Optional[Record]:
        """Details of the authenticated connection, or None when unavailable."""
        client = self._component('client')
        try:
            data = client.get_connection_data()
        except (UpstreamError, NotFound) as e:
            self.logger.warning(f'Could not retrieve connection info: {str(e)}')
            return None
        return Record(
            authenticated_user=data.get('authenticatedUser'),
            authorized_user=data.get('authorizedUser'),
            instance_id=data.get('instanceId'),
            deployment_id=data.get('deploymentId'),
            deployment_type=data.get('deploymentType'),
        )

    def validate_permissions(self, areas: Optional[Sequence[str]] = None) -> Record:
        """Check which API areas the credentials can use.

        Args:
            areas: Area names from PERMISSION_CHECKS; defaults to work items, Git
                and test management

        Returns:
            Record keyed by area, each with 'available' and, when unavailable, 'error'
        """
        client = self._component('client')
        results = Record()
        for area in areas or DEFAULT_PERMISSION_AREAS:
            check = PERMISSION_CHECKS.get(area)
            if check is None:
                results[area] = {'available': False, 'error': 'Unknown permission type'}
                continue
            try:
                getattr(client, check)()
            except (UpstreamError, NotFound) as e:
                denied = isinstance(e, UpstreamError) and e.status_code == 403
                results[area] = {
                    'available': False,
                    'error': 'Insufficient permissions' if denied else str(e),
                }
                continue
            results[area] = {'available': True}

        unavailable = [area for area, result in results.items() if not result['available']]
        if unavailable:
            self.logger.warning(f'Unavailable Azure DevOps areas: {", ".join(unavailable)}')
        return results

    # Work items

    def create_user_story(self, title: str, description: str, options: Optional[dict] = None):
        return self._component('work_items').create_user_story(title, description, options)

    def update_user_story(self, work_item_id: Any, updates: dict):
        return self._component('work_items').update_user_story(work_item_id, updates)

    def delete_user_story(self, work_item_id: Any, destroy: bool = False):
        return self._component('work_items').delete_user_story(work_item_id, destroy)

    def get_work_item(self, work_item_id: Any):
        return self._component('work_items').get_work_item(work_item_id)

    def search_work_items(self, wiql: str) -> List[Any]:
        return self._component('work_items').search_work_items(wiql)

    def create_bug(self, title: str, description: str, options: Optional[dict] = None):
        return self._component('work_items').create_bug(title, description, options)

    def update_bug(self, work_item_id: Any, updates: dict):
        return self._component('work_items').update_bug(work_item_id, updates)

    def create_task(self, title: str, description: str, options: Optional[dict] = None):
        return self._component('work_items').create_task(title, description, options)

    def link_user_story_to_feature(self, user_story_id: Any, feature_id: Any):
        return self._component('work_items').link_user_story_to_feature(user_story_id, feature_id)

    def link_work_items(self, source_id: Any, target_id: Any, link_type: str = 'Child'):
        return self._component('work_items').link_work_items(source_id, target_id, link_type)

    def get_user_stories_for_feature(self, feature_id: Any) -> List[Any]:
        return self._component('work_items').get_user_stories_for_feature(feature_id)

    def get_work_item_comments(self, work_item_id: Any) -> List[Any]:
        return self._component('work_items').get_work_item_comments(work_item_id)

    def add_work_item_comment(self, work_item_id: Any, text: str):
        return self._component('work_items').add_work_item_comment(work_item_id, text)

    def get_work_item_attachments(self, work_item_id: Any) -> List[Any]:
        return self._component('work_items').get_work_item_attachments(work_item_id)

    def get_bug_details(self, work_item_id: Any):
        return self._component('work_items').get_bug_details(work_item_id)

    # Test cases

    def create_test_case(
        self,
        title: str,
        description: str,
        steps: Optional[list] = None,
        options: Optional[dict] = None,
    ):
        return self._component('test_cases').create_test_case(title, description, steps, options)

    def update_test_case(self, test_case_id: Any, updates: dict):
        return self._component('test_cases').update_test_case(test_case_id, updates)

    def get_test_case(self, test_case_id: Any):
        return self._component('test_cases').get_test_case(test_case_id)

    def delete_test_case(self, test_case_id: Any, destroy: bool = False):
        return self._component('test_cases').delete_test_case(test_case_id, destroy)

    def associate_test_case_with_user_story(self, test_case_id: Any, user_story_id: Any):
        return self._component('test_cases').associate_test_case_with_user_story(
            test_case_id, user_story_id
        )

    def search_test_cases(self, wiql: str) -> List[Any]:
        return self._component('test_cases').search_test_cases(wiql)

    def get_test_cases_for_user_story(self, user_story_id: Any) -> List[Any]:
        return self._component('test_cases').get_test_cases_for_user_story(user_story_id)

    # Pull requests

    def get_pull_request(self, repository_id: str, pull_request_id: Any, include_details: bool = True):
        return self._component('pull_requests').get_pull_request(
            repository_id, pull_request_id, include_details
        )

    def get_pull_request_by_url(self, url: str, include_details: bool = True):
        return self._component('pull_requests').get_pull_request_by_url(url, include_details)

    def get_pull_request_comments(
        self, repository_id: str, pull_request_id: Any, include_threads: bool = True
    ) -> List[Any]:
        return self._component('pull_requests').get_pull_request_comments(
            repository_id, pull_request_id, include_threads
        )

    def add_pull_request_comment(
        self,
        repository_id: str,
        pull_request_id: Any,
        comment: str,
        file_path: Optional[str] = None,
        line: Optional[int] = None,
    ):
        return self._component('pull_requests').add_pull_request_comment(
            repository_id, pull_request_id, comment, file_path, line
        )

    def reply_to_pull_request_comment(
        self,
        repository_id: str,
        pull_request_id: Any,
        parent_comment_id: Any,
        reply: str,
        thread_id: Optional[Any] = None,
    ):
        return self._component('pull_requests').reply_to_pull_request_comment(
            repository_id, pull_request_id, parent_comment_id, reply, thread_id
        )

    def update_comment_thread_status(
        self, repository_id: str, pull_request_id: Any, thread_id: Any, status: str
    ):
        return self._component('pull_requests').update_comment_thread_status(
            repository_id, pull_request_id, thread_id, status
        )

    def get_repositories(self) -> List[Any]:
        return self._component('pull_requests').get_repositories()
