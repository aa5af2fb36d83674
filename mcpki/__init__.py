"""
mcpki - MCP tools for PKI operations against a CA REST backend.
"""

__version__ = "0.1.0"
