"""Azure DevOps Integration MCP Server.

This module provides the MCP server exposing Azure DevOps work item, test case and
pull request operations as tools.
"""

import logfire
import os
import sys
from loguru import logger
from mcp.server.fastmcp import FastMCP
from tl.azure_devops_integration.ado_tools import AzureDevOpsTools
from tl.azure_devops_integration.config import AzureDevOpsConfig, load_config, resolve_log_level
from tl.azure_devops_integration.integration import AzureDevOpsIntegration
from typing import Optional


# Server constants for Azure DevOps Integration MCP Server
SERVER_INSTRUCTIONS = """
You manage work in a single Azure DevOps project on behalf of the user:

1. Create, update, search and delete user stories, tasks and bugs
2. Link user stories to features and tasks or bugs to their parents
3. Write test cases with ordered steps and associate them with user stories
4. Review pull requests: read details and comment threads, add comments,
   reply to comments and resolve threads

Searches take WIQL queries. Priorities run from 1 (highest) to 4. Comment thread
statuses are Active, Fixed, WontFix, Closed, ByDesign and Pending.
"""

SERVER_DEPENDENCIES: list[str] = [
    'requests',
    'urllib3',
    'python-dotenv',
    'loguru',
    'logfire',
]

TRANSPORTS = ('stdio', 'sse', 'streamable-http')

# Initialize MCP server
mcp: FastMCP = FastMCP(
    'tl.azure-devops-integration',
    instructions=SERVER_INSTRUCTIONS,
    dependencies=SERVER_DEPENDENCIES,
)


def setup_logging(level: str = 'INFO') -> None:
    """Set up logging configuration.

    Logs go to stderr, leaving stdout to the stdio transport, and to Logfire.

    Args:
        level: Loguru level name or 0-4, usually AzureDevOpsConfig.log_level
    """
    level = resolve_log_level(level)

    # Get the Logfire write token
    logfire_write_token: str = os.environ.get('LOGFIRE_WRITE_TOKEN', '')
    logfire.configure(
        token=logfire_write_token or None,
        send_to_logfire='if-token-present',
        console=False,
    )

    if level == 'OFF':
        logger.remove()
        return

    logger.configure(
        handlers=[
            {'sink': sys.stderr, 'level': level},
            {**logfire.loguru_handler(), 'level': level},
        ]
    )
    if not logfire_write_token:
        logger.warning('LOGFIRE_WRITE_TOKEN not found in environment variables.')
    else:
        logger.info('LOGFIRE_WRITE_TOKEN successfully loaded.')


def register_tools(integration: Optional[AzureDevOpsIntegration] = None) -> AzureDevOpsTools:
    """Register Azure DevOps tools with the MCP server."""
    global mcp
    return AzureDevOpsTools(mcp, integration)


def main() -> None:
    """Main entry point to start the MCP server."""
    global mcp

    # Load configuration before starting the server
    load_config()
    config = AzureDevOpsConfig.from_env()

    # Configure logging
    setup_logging(config.log_level)

    # Register tools
    register_tools(AzureDevOpsIntegration(config))

    transport = os.environ.get('MCP_TRANSPORT', 'stdio').strip() or 'stdio'
    if transport not in TRANSPORTS:
        logger.error(f'Unsupported MCP_TRANSPORT "{transport}", expected one of {TRANSPORTS}')
        raise SystemExit(2)

    logger.info(f'Created MCP server with Azure DevOps functions ({transport} transport)')
    mcp.run(transport=transport)


if __name__ == '__main__':
    main()
