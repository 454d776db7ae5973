"""Tests for the MCP server entry points."""

import pytest
from tl.azure_devops_integration import server
from tl.azure_devops_integration.ado_tools import AzureDevOpsTools
from unittest.mock import MagicMock


@pytest.fixture
def fake_mcp(monkeypatch):
    mcp = MagicMock()
    monkeypatch.setattr(server, 'mcp', mcp)
    return mcp


def test_register_tools_uses_server_instance(fake_mcp, integration):
    tools = server.register_tools(integration)
    assert isinstance(tools, AzureDevOpsTools)
    assert tools.integration is integration
    assert fake_mcp.tool.call_count == 31


def test_setup_logging_configures_logfire_without_token(monkeypatch):
    configure = MagicMock()
    monkeypatch.setattr(server.logfire, 'configure', configure)
    monkeypatch.delenv('LOGFIRE_WRITE_TOKEN', raising=False)
    fake_logger = MagicMock()
    monkeypatch.setattr(server, 'logger', fake_logger)

    server.setup_logging('0')

    configure.assert_called_once_with(token=None, send_to_logfire='if-token-present', console=False)
    fake_logger.remove.assert_called_once_with()
    fake_logger.configure.assert_not_called()


def test_setup_logging_installs_stderr_and_logfire_sinks(monkeypatch):
    monkeypatch.setattr(server.logfire, 'configure', MagicMock())
    monkeypatch.setenv('LOGFIRE_WRITE_TOKEN', 'token-123')
    fake_logger = MagicMock()
    monkeypatch.setattr(server, 'logger', fake_logger)

    server.setup_logging('debug')

    handlers = fake_logger.configure.call_args.kwargs['handlers']
    assert [handler['level'] for handler in handlers] == ['DEBUG', 'DEBUG']
    assert handlers[0]['sink'] is server.sys.stderr


def test_main_runs_configured_transport(monkeypatch, fake_mcp):
    monkeypatch.setattr(server, 'load_config', MagicMock())
    monkeypatch.setattr(server, 'setup_logging', MagicMock())
    monkeypatch.setattr(server, 'register_tools', MagicMock())
    monkeypatch.setenv('MCP_TRANSPORT', 'streamable-http')

    server.main()

    fake_mcp.run.assert_called_once_with(transport='streamable-http')


def test_main_defaults_to_stdio(monkeypatch, fake_mcp):
    monkeypatch.setattr(server, 'load_config', MagicMock())
    monkeypatch.setattr(server, 'setup_logging', MagicMock())
    monkeypatch.setattr(server, 'register_tools', MagicMock())
    monkeypatch.delenv('MCP_TRANSPORT', raising=False)

    server.main()

    fake_mcp.run.assert_called_once_with(transport='stdio')


def test_main_rejects_unknown_transport(monkeypatch, fake_mcp):
    monkeypatch.setattr(server, 'load_config', MagicMock())
    monkeypatch.setattr(server, 'setup_logging', MagicMock())
    monkeypatch.setattr(server, 'register_tools', MagicMock())
    monkeypatch.setenv('MCP_TRANSPORT', 'carrier-pigeon')

    with pytest.raises(SystemExit) as excinfo:
        server.main()
    assert excinfo.value.code == 2
    fake_mcp.run.assert_not_called()


def test_main_uses_configured_log_level(monkeypatch, fake_mcp):
    setup_logging = MagicMock()
    register_tools = MagicMock()
    monkeypatch.setattr(server, 'load_config', MagicMock())
    monkeypatch.setattr(server, 'setup_logging', setup_logging)
    monkeypatch.setattr(server, 'register_tools', register_tools)
    monkeypatch.setenv('AZURE_DEVOPS_LOG_LEVEL', '4')
    monkeypatch.setenv('AZURE_DEVOPS_PROJECT', 'Demo')
    monkeypatch.delenv('MCP_TRANSPORT', raising=False)

    server.main()

    setup_logging.assert_called_once_with('DEBUG')
    integration = register_tools.call_args.args[0]
    assert integration.config.log_level == 'DEBUG'
    assert integration.config.project == 'Demo'
    assert integration.is_initialized is False
