"""Configuration for the Azure DevOps integration.

Values come from the process environment, optionally seeded from a .env file.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv
from loguru import logger
from pathlib import Path
from tl.azure_devops_integration.errors import InvalidConfiguration
from typing import Mapping, Optional


DEFAULT_USER_STORY_TYPE = 'Product Backlog Item'
DEFAULT_API_VERSION = '7.1'

# Legacy numeric verbosity scale (0 = silent ... 4 = debug)
NUMERIC_LOG_LEVELS = {
    '0': 'OFF',
    '1': 'ERROR',
    '2': 'WARNING',
    '3': 'INFO',
    '4': 'DEBUG',
}


def load_config() -> Optional[Path]:
    """Load configuration from .env file.

    Looks for .env file in the current directory and parent directories.

    Returns:
        Path of the .env file that was loaded, or None if none was found
    """
    # Start with the package directory and move up to find .env
    current_dir = Path(os.path.dirname(os.path.abspath(__file__)))

    # Look for .env in current directory and up to 3 levels up
    for _ in range(4):
        env_file = current_dir / '.env'
        if env_file.exists():
            logger.info(f'Loading configuration from {env_file}')
            load_dotenv(dotenv_path=env_file)
            return env_file
        current_dir = current_dir.parent

    logger.warning('No .env file found. Using environment variables if available.')
    return None


def resolve_log_level(value: Optional[str]) -> str:
    """Translate a configured log level into a loguru level name.

    Accepts loguru level names (case-insensitive) or the numeric scale 0-4.
    Unrecognised values fall back to INFO.
    """
    if value is None or not str(value).strip():
        return 'INFO'
    value = str(value).strip().upper()
    if value in NUMERIC_LOG_LEVELS:
        return NUMERIC_LOG_LEVELS[value]
    if value in ('OFF', 'TRACE', 'DEBUG', 'INFO', 'SUCCESS', 'WARNING', 'ERROR', 'CRITICAL'):
        return value
    logger.warning(f'Unknown log level "{value}", using INFO')
    return 'INFO'


def _int_setting(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key, '')
    if not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise InvalidConfiguration(f'{key} must be an integer, got "{raw}"')


@dataclass(frozen=True)
class AzureDevOpsConfig:
    """Connection settings for one Azure DevOps organization and project."""

    organization_url: str
    personal_access_token: str
    project: str
    user_story_type: str = DEFAULT_USER_STORY_TYPE
    log_level: str = 'INFO'
    api_version: str = DEFAULT_API_VERSION
    timeout: int = 30
    max_retries: int = 3

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> 'AzureDevOpsConfig':
        """Build a configuration from environment variables.

        Args:
            environ: Mapping to read from, defaults to os.environ

        Returns:
            AzureDevOpsConfig populated from AZURE_DEVOPS_* variables
        """
        if environ is None:
            environ = os.environ

        return cls(
            organization_url=environ.get('AZURE_DEVOPS_ORG_URL', '').strip(),
            personal_access_token=environ.get('AZURE_DEVOPS_PAT', '').strip(),
            project=environ.get('AZURE_DEVOPS_PROJECT', '').strip(),
            user_story_type=environ.get('AZURE_DEVOPS_USER_STORY_TYPE', '').strip()
            or DEFAULT_USER_STORY_TYPE,
            log_level=resolve_log_level(environ.get('AZURE_DEVOPS_LOG_LEVEL')),
            timeout=_int_setting(environ, 'AZURE_DEVOPS_TIMEOUT', 30),
            max_retries=_int_setting(environ, 'AZURE_DEVOPS_MAX_RETRIES', 3),
        )

    def validate(self) -> None:
        """Check that all required settings are present.

        Raises:
            InvalidConfiguration: If organization URL, token or project is missing
        """
        required = {
            'organization_url': 'AZURE_DEVOPS_ORG_URL',
            'personal_access_token': 'AZURE_DEVOPS_PAT',
            'project': 'AZURE_DEVOPS_PROJECT',
        }
        missing = [
            f'{name} ({env_var})'
            for name, env_var in required.items()
            if not getattr(self, name).strip()
        ]
        if missing:
            raise InvalidConfiguration(f'Missing required configuration: {", ".join(missing)}')
