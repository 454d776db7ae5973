"""Shared pytest fixtures."""

import logfire
import pytest
from fakes import InMemoryAzureDevOpsClient
from tl.azure_devops_integration.config import AzureDevOpsConfig
from tl.azure_devops_integration.integration import AzureDevOpsIntegration
from tl.azure_devops_integration.pull_requests import PullRequestManager
from tl.azure_devops_integration.testcases import TestCaseManager
from tl.azure_devops_integration.work_items import WorkItemManager


VALID_PAT = 'a' * 52


def pytest_configure(config):
    logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def fake_client():
    return InMemoryAzureDevOpsClient()


@pytest.fixture
def work_items(fake_client):
    return WorkItemManager(fake_client, 'Product Backlog Item')


@pytest.fixture
def test_cases(fake_client):
    return TestCaseManager(fake_client, 'Product Backlog Item')


@pytest.fixture
def pull_requests(fake_client):
    return PullRequestManager(fake_client)


@pytest.fixture
def config():
    return AzureDevOpsConfig(
        organization_url='https://dev.azure.com/acme',
        personal_access_token=VALID_PAT,
        project='Demo',
    )


@pytest.fixture
def integration(config, fake_client):
    return AzureDevOpsIntegration(config, client_factory=lambda cfg, logger: fake_client)


@pytest.fixture
def pull_request_payload():
    return {
        'pullRequestId': 42,
        'title': 'Add login page',
        'description': 'Implements the login form',
        'status': 'active',
        'createdBy': {'displayName': 'Ada Lovelace'},
        'creationDate': '2024-05-01T10:00:00Z',
        'sourceRefName': 'refs/heads/feature/login',
        'targetRefName': 'refs/heads/main',
        'repository': {
            'id': 'repo-1',
            'name': 'web',
            'webUrl': 'https://dev.azure.com/acme/Demo/_git/web',
        },
        'reviewers': [
            {'id': 'r-1', 'displayName': 'Grace Hopper', 'uniqueName': 'grace@acme.io', 'vote': 10}
        ],
    }


@pytest.fixture
def seeded_pull_request(fake_client, pull_request_payload):
    fake_client.add_pull_request('repo-1', pull_request_payload)
    fake_client.repositories.append(
        {'id': 'repo-1', 'name': 'web', 'webUrl': 'https://dev.azure.com/acme/Demo/_git/web'}
    )
    return pull_request_payload
