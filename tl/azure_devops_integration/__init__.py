"""Azure DevOps Integration Package.

This package provides a client for Azure DevOps work items, test cases and pull
requests, served to agents as Model Context Protocol (MCP) tools and over HTTP.
"""

__version__ = '0.1.0'
__description__ = 'Azure DevOps work item, test case and pull request integration over MCP and HTTP'
