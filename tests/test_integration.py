"""Tests for the AzureDevOpsIntegration facade."""

import pytest
import threading
from conftest import VALID_PAT
from fakes import InMemoryAzureDevOpsClient, upstream
from tl.azure_devops_integration.client import RestAzureDevOpsClient
from tl.azure_devops_integration.config import AzureDevOpsConfig
from tl.azure_devops_integration.errors import NotFound, NotInitialized, UpstreamError
from tl.azure_devops_integration.integration import AzureDevOpsIntegration


def test_starts_uninitialized(integration, fake_client):
    assert integration.is_initialized is False
    assert integration.work_items is None
    assert fake_client.calls == []


def test_first_operation_initializes(integration):
    story = integration.create_user_story('Login', 'desc')
    assert integration.is_initialized is True
    assert integration.get_work_item(story.id).title == 'Login'


def test_initialize_builds_client_once(config):
    built = []

    def factory(cfg, logger):
        built.append(cfg)
        return InMemoryAzureDevOpsClient()

    integration = AzureDevOpsIntegration(config, client_factory=factory)
    threads = [threading.Thread(target=integration.initialize) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert integration.initialize() is True
    assert len(built) == 1


def test_missing_configuration_raises_not_initialized():
    integration = AzureDevOpsIntegration(
        AzureDevOpsConfig.from_env({}), client_factory=lambda cfg, logger: InMemoryAzureDevOpsClient()
    )
    with pytest.raises(NotInitialized, match='AZURE_DEVOPS_ORG_URL'):
        integration.get_work_item(1)
    assert integration.is_initialized is False


def test_invalid_token_raises_not_initialized():
    config = AzureDevOpsConfig('https://dev.azure.com/acme', 'short', 'Demo')
    integration = AzureDevOpsIntegration(config)
    with pytest.raises(NotInitialized, match='Failed to initialize'):
        integration.search_work_items('SELECT [System.Id] FROM WorkItems')


def test_default_factory_builds_rest_client():
    config = AzureDevOpsConfig('https://acme.visualstudio.com', VALID_PAT, 'Demo', timeout=5)
    integration = AzureDevOpsIntegration(config)
    integration.initialize()

    assert isinstance(integration.client, RestAzureDevOpsClient)
    assert integration.client.organization_url == 'https://dev.azure.com/acme'
    assert integration.client.timeout == 5
    integration.dispose()


def test_dispose_closes_client(integration, fake_client):
    integration.initialize()
    integration.dispose()
    assert fake_client.closed is True
    assert integration.is_initialized is False
    assert integration.pull_requests is None


def test_dispose_when_uninitialized_is_a_no_op(integration, fake_client):
    integration.dispose()
    assert fake_client.closed is False


def test_refresh_rebuilds_managers(integration):
    integration.initialize()
    first = integration.work_items
    assert integration.refresh() is True
    assert integration.work_items is not first
    assert integration.is_initialized is True


def test_managers_use_configured_user_story_type(fake_client):
    config = AzureDevOpsConfig('https://dev.azure.com/acme', VALID_PAT, 'Demo', user_story_type='User Story')
    integration = AzureDevOpsIntegration(config, client_factory=lambda cfg, logger: fake_client)
    story = integration.create_user_story('Story', 'desc')
    assert story.work_item_type == 'User Story'
    assert story.type == 'UserStory'


def test_connection_success(integration):
    result = integration.test_connection()
    assert result.success is True
    assert result.project_count == 1
    assert result.projects == [{'id': 'p-1', 'name': 'Demo', 'description': ''}]


@pytest.mark.parametrize(
    'status_code,message',
    [(401, 'Authentication failed'), (403, 'Access denied')],
)
def test_connection_auth_failures_raise(integration, fake_client, status_code, message):
    fake_client.failures['get_projects'] = upstream(status_code)
    with pytest.raises(UpstreamError, match=message) as excinfo:
        integration.test_connection()
    assert excinfo.value.status_code == status_code


def test_connection_missing_organization(integration, fake_client):
    fake_client.failures['get_projects'] = NotFound('no such organization')
    with pytest.raises(NotFound, match='Organization not found'):
        integration.test_connection()


def test_connection_other_failures_are_reported(integration, fake_client):
    fake_client.failures['get_projects'] = upstream(500, 'Service unavailable')
    result = integration.test_connection()
    assert result == {'success': False, 'error': 'Service unavailable'}


def test_organization_info(integration):
    info = integration.get_organization_info()
    assert info.name == 'acme'
    assert info.url == 'https://dev.azure.com/acme'
    assert info.projects[0]['name'] == 'Demo'


def test_connection_info(integration, fake_client):
    info = integration.get_connection_info()
    assert info.instance_id == 'instance-1'

    fake_client.failures['get_connection_data'] = upstream(500)
    assert integration.get_connection_info() is None


def test_delegates_to_every_manager(integration, seeded_pull_request):
    story = integration.create_user_story('Story', 'desc')
    test_case = integration.create_test_case('Case', 'desc', [{'action': 'a', 'expected_result': 'b'}])
    integration.associate_test_case_with_user_story(test_case.id, story.id)

    assert [item.id for item in integration.get_test_cases_for_user_story(story.id)] == [test_case.id]
    assert integration.get_pull_request('repo-1', 42, include_details=False).title == 'Add login page'
    assert [repository.name for repository in integration.get_repositories()] == ['web']


def test_dispose_before_use_raises_not_initialized(integration, monkeypatch):
    ensure_initialized = integration._ensure_initialized

    def initialize_then_dispose():
        ensure_initialized()
        integration.dispose()

    monkeypatch.setattr(integration, '_ensure_initialized', initialize_then_dispose)

    with pytest.raises(NotInitialized, match='disposed'):
        integration.get_work_item(1)
    with pytest.raises(NotInitialized, match='disposed'):
        integration.test_connection()


def test_validate_permissions_default_areas(integration, fake_client):
    assert integration.validate_permissions() == {
        'Work Items': {'available': True},
        'Git': {'available': True},
        'Test Management': {'available': True},
    }
    assert [call[0] for call in fake_client.calls] == ['get_work_item_types', 'get_repositories', 'get_test_plans']


def test_validate_permissions_reports_each_failure(integration, fake_client):
    fake_client.failures['get_test_plans'] = upstream(403)
    fake_client.failures['get_builds'] = upstream(500, 'Service unavailable')

    assert integration.validate_permissions(['Test Management', 'Build', 'Release']) == {
        'Test Management': {'available': False, 'error': 'Insufficient permissions'},
        'Build': {'available': False, 'error': 'Service unavailable'},
        'Release': {'available': False, 'error': 'Unknown permission type'},
    }


def test_bug_operations_are_delegated(integration):
    bug = integration.create_bug('Crash', 'desc', {'severity': '1 - Critical'})
    assert integration.get_work_item_attachments(bug.id) == []
    details = integration.get_bug_details(bug.id)
    assert details.bug_fields['severity'] == '1 - Critical'
    assert details.attachments == []
