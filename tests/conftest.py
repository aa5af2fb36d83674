import pytest
from unittest.mock import AsyncMock, MagicMock

# Import logging configuration
from tests.conftest_logging import configure_test_logging

from mcpki.ca_client import CAClient
from mcpki.config import TOOL_NAMES, ToolSettings, ValidationSettings
from mcpki.registrar import ToolRegistrar
from mcpki.tools import EjbcaTools, PkiTools

BASE_URL = "https://ca.internal:8443/ejbca/ejbca-rest-api"


@pytest.fixture
def validation_settings():
    """Provides the default validation bounds."""
    return ValidationSettings()


@pytest.fixture
def tool_settings():
    """Provides tool settings with every tool enabled."""
    return ToolSettings(enabled={name: True for name in TOOL_NAMES})


@pytest.fixture
def mock_ca_client():
    """Provides a mocked CAClient so that no test touches the network."""
    client = AsyncMock(spec=CAClient)
    client.base_url = BASE_URL
    return client


@pytest.fixture
def ejbca_tools(mock_ca_client, validation_settings, tool_settings):
    """Provides the backend tool handlers wired to the mocked client."""
    return EjbcaTools(mock_ca_client, validation_settings, tool_settings)


@pytest.fixture
def pki_tools(validation_settings):
    return PkiTools(validation_settings)


@pytest.fixture
def registrar(ejbca_tools, pki_tools, tool_settings):
    """Provides a ToolRegistrar with all tools enabled."""
    return ToolRegistrar(ejbca_tools, pki_tools, tool_settings, BASE_URL)


@pytest.fixture
def mcp_server():
    """Provides a stand-in FastMCP server that records tool registrations."""
    server = MagicMock()
    server._registered_tools = {}

    def mock_add_tool(function_tool):
        server._registered_tools[function_tool.name] = function_tool
        return function_tool

    server.add_tool = MagicMock(side_effect=mock_add_tool)
    return server
