import asyncio
import logging
import sys

from fastmcp import FastMCP

from .ca_client import CAClient
from .config import ConfigurationError, load_config
from .logging_config import setup_logging
from .registrar import ToolRegistrar
from .tools import EjbcaTools, PkiTools


def _config_path_from_argv(argv):
    """Returns the value of --config PATH if present."""
    if "--config" in argv:
        index = argv.index("--config")
        if index + 1 < len(argv):
            return argv[index + 1]
    return None


async def main(argv=None):
    """
    The main entry point for the mcpki MCP server.

    This function loads the configuration, registers the enabled PKI tools and,
    based on command-line arguments, runs the server in either Streamable HTTP
    mode or stdio mode.
    """
    argv = sys.argv[1:] if argv is None else argv
    stdio_mode = "--stdio" in argv
    setup_logging(stdio_mode=stdio_mode)
    logging.info("Starting mcpki MCP server...")

    # Invalid configuration is fatal: no tool is served.
    config = load_config(_config_path_from_argv(argv))

    ca_client = CAClient(config.backend)
    try:
        ejbca_tools = EjbcaTools(ca_client, config.validation, config.tools)
        pki_tools = PkiTools(config.validation)
        tool_registrar = ToolRegistrar(
            ejbca_tools, pki_tools, config.tools, config.backend.url
        )

        # Create the FastMCP server instance
        server = FastMCP(config.server.name)
        tool_registrar.register_tools(server)

        if stdio_mode:
            logging.info("Running in stdio mode.")
            await server.run_async(transport="stdio")
        else:
            host = config.server.host
            port = config.server.port
            logging.info(f"Running in Streamable HTTP mode on {host}:{port}")
            await server.run_async(transport="streamable-http", host=host, port=port)
    finally:
        await ca_client.close()


def run():
    """Console script entry point."""
    try:
        asyncio.run(main())
    except ConfigurationError as e:
        logging.error(f"Invalid configuration: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        logging.info("Shutting down mcpki.")


if __name__ == "__main__":
    run()
