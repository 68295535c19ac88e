"""GSCNav MCP Server.

A Model Context Protocol server providing access to Google Search Console
Search Analytics data.
"""

__version__ = "1.0.0"

from gscnav_mcp.server import create_mcp_server

__all__ = ["create_mcp_server"]
