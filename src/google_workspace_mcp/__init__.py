"""Google Workspace MCP Server.

Connect Claude to Google Workspace APIs including Drive, Docs, Sheets, and Calendar.
"""

from google_workspace_mcp.__version__ import __version__

__all__ = ["__version__"]
