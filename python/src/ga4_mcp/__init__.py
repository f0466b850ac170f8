"""
GA4 MCP server.

Exposes Google Analytics 4 Admin and Data API operations, plus GTM → GA4
parameter validation, as Model Context Protocol tools.
"""

__version__ = "1.0.0"
