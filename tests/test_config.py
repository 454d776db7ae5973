"""Tests for configuration loading."""

import pytest
from tl.azure_devops_integration.config import AzureDevOpsConfig, resolve_log_level
from tl.azure_devops_integration.errors import InvalidConfiguration


ENV = {
    'AZURE_DEVOPS_ORG_URL': 'https://dev.azure.com/acme',
    'AZURE_DEVOPS_PAT': 'a' * 52,
    'AZURE_DEVOPS_PROJECT': 'Demo',
}


def test_from_env_reads_required_settings():
    config = AzureDevOpsConfig.from_env(ENV)
    assert config.organization_url == 'https://dev.azure.com/acme'
    assert config.project == 'Demo'
    assert config.user_story_type == 'Product Backlog Item'
    assert config.log_level == 'INFO'
    assert config.timeout == 30
    assert config.max_retries == 3
    config.validate()


def test_from_env_optional_settings():
    config = AzureDevOpsConfig.from_env(
        {
            **ENV,
            'AZURE_DEVOPS_USER_STORY_TYPE': 'User Story',
            'AZURE_DEVOPS_LOG_LEVEL': '4',
            'AZURE_DEVOPS_TIMEOUT': '10',
            'AZURE_DEVOPS_MAX_RETRIES': '0',
        }
    )
    assert config.user_story_type == 'User Story'
    assert config.log_level == 'DEBUG'
    assert config.timeout == 10
    assert config.max_retries == 0


def test_validate_names_every_missing_setting():
    config = AzureDevOpsConfig.from_env({'AZURE_DEVOPS_PROJECT': 'Demo'})
    with pytest.raises(InvalidConfiguration) as excinfo:
        config.validate()
    message = str(excinfo.value)
    assert 'AZURE_DEVOPS_ORG_URL' in message
    assert 'AZURE_DEVOPS_PAT' in message
    assert 'AZURE_DEVOPS_PROJECT' not in message


def test_non_integer_timeout_is_rejected():
    with pytest.raises(InvalidConfiguration, match='AZURE_DEVOPS_TIMEOUT'):
        AzureDevOpsConfig.from_env({**ENV, 'AZURE_DEVOPS_TIMEOUT': 'soon'})


def test_config_is_immutable():
    config = AzureDevOpsConfig.from_env(ENV)
    with pytest.raises(AttributeError):
        config.project = 'Other'


@pytest.mark.parametrize(
    'value,level',
    [
        ('0', 'OFF'),
        ('1', 'ERROR'),
        ('2', 'WARNING'),
        ('3', 'INFO'),
        ('4', 'DEBUG'),
        ('debug', 'DEBUG'),
        ('Warning', 'WARNING'),
        (None, 'INFO'),
        ('', 'INFO'),
        ('loud', 'INFO'),
    ],
)
def test_resolve_log_level(value, level):
    assert resolve_log_level(value) == level
