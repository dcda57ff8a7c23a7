"""Google Workspace MCP server for Claude Desktop integration.

This MCP server provides tools for interacting with Google Workspace APIs
(Drive, Docs, Sheets, Calendar) using OAuth tokens stored by TokenStorage.

Authorization is started from the ``authorize`` tool, which returns a
consent URL and completes in the background. Every other tool loads the
stored credentials first; token refresh happens transparently and refreshed
tokens are written back to disk.
"""

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from google_workspace_mcp.auth import (
    AuthorizationFlow,
    AuthorizedClient,
    TokenStorage,
    get_authenticated_client,
)

# Configure logging (stderr; stdout carries the MCP stream)
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVER_NAME = "google-workspace-mcp"

# Google API base URLs
DRIVE_API_BASE = "https://www.googleapis.com/drive/v3"
DOCS_API_BASE = "https://docs.googleapis.com/v1"
SHEETS_API_BASE = "https://sheets.googleapis.com/v4"
CALENDAR_API_BASE = "https://www.googleapis.com/calendar/v3"

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
MAX_SPREADSHEET_TITLE = 500
MAX_EVENT_RESULTS = 100


class NotAuthorizedError(RuntimeError):
    """Raised when a tool needs credentials and none are stored."""


def _require(arguments: dict[str, Any], *names: str) -> None:
    """Raise ValueError naming any required argument that is missing."""
    missing = [name for name in names if arguments.get(name) in (None, "")]
    if missing:
        raise ValueError(f"Missing required argument(s): {', '.join(missing)}")


def _escape_drive_query(value: str) -> str:
    """Escape a literal for use inside a quoted Drive query string."""
    return value.replace("\\", "\\\\").replace("'", "\\'")


def _file_url(file_id: str) -> str:
    return f"{DRIVE_API_BASE}/files/{quote(file_id, safe='')}"


def _document_url(document_id: str) -> str:
    return f"{DOCS_API_BASE}/documents/{quote(document_id, safe='')}"


def _event_time(value: dict[str, Any] | None) -> str:
    value = value or {}
    return value.get("dateTime") or value.get("date") or ""


def _clamp_results(value: Any, default: int = 20) -> int:
    try:
        requested = int(value) if value is not None else default
    except (TypeError, ValueError):
        requested = default
    return min(max(requested, 1), MAX_EVENT_RESULTS)


class GoogleWorkspaceServer:
    """MCP server for Google Workspace APIs.

    Provides tools for Drive, Docs, Sheets and Calendar plus the
    ``authorize`` tool that starts the OAuth flow.

    Attributes:
        server: MCP Server instance.
        storage: TokenStorage holding the OAuth credentials.
    """

    def __init__(self, storage: TokenStorage | None = None) -> None:
        """Initialize the Google Workspace MCP server."""
        self.server = Server(SERVER_NAME)
        self.storage = storage or TokenStorage()
        self._http_client: httpx.AsyncClient | None = None
        self._flows: list[AuthorizationFlow] = []
        self._setup_handlers()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create shared HTTP client with connection pooling.

        Returns:
            Shared httpx.AsyncClient instance.
        """
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                http2=True,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and any pending authorization listeners."""
        for flow in self._flows:
            flow.close()
        self._flows.clear()
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return self.tool_definitions()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await self.call_tool(name, arguments)

    async def call_tool(self, name: str, arguments: dict[str, Any] | None) -> list[TextContent]:
        """Run a tool and wrap its result (or error) as JSON text content."""
        try:
            result = await self._dispatch_tool(name, arguments or {})
            return [TextContent(type="text", text=json.dumps(result, indent=2))]
        except Exception as e:
            logger.exception(f"Error calling tool {name}")
            return [
                TextContent(
                    type="text",
                    text=json.dumps({"error": str(e)}, indent=2),
                )
            ]

    def tool_definitions(self) -> list[Tool]:
        """Describe every tool with its JSON input schema."""
        string = {"type": "string"}
        values_2d = {
            "type": "array",
            "items": {"type": "array", "items": {"type": "string"}},
        }

        def tool(
            name: str,
            description: str,
            properties: dict[str, Any] | None = None,
            required: list[str] | None = None,
        ) -> Tool:
            return Tool(
                name=name,
                description=description,
                inputSchema={
                    "type": "object",
                    "properties": properties or {},
                    "required": required or [],
                },
            )

        return [
            tool(
                "authorize",
                "Start Google OAuth2 authorization. Returns a URL to open in your browser. "
                "The server captures the token automatically when you complete authorization.",
            ),
            # Drive
            tool(
                "drive_list",
                "List files and folders in Google Drive",
                {
                    "folder_id": {**string, "description": "Folder ID to list (defaults to all files)"},
                    "page_size": {"type": "integer", "description": "Max results (default 20)"},
                },
            ),
            tool(
                "drive_search",
                "Search for files in Google Drive by name",
                {
                    "query": {**string, "description": "Search term to match against file names"},
                    "page_size": {"type": "integer", "description": "Max results (default 20)"},
                },
                ["query"],
            ),
            tool(
                "drive_get",
                "Get metadata for a specific file or folder",
                {"file_id": {**string, "description": "The Google Drive file ID"}},
                ["file_id"],
            ),
            tool(
                "drive_create_folder",
                "Create a new folder in Google Drive",
                {
                    "name": {**string, "description": "Name of the folder to create"},
                    "parent_id": {**string, "description": "Parent folder ID (defaults to root)"},
                },
                ["name"],
            ),
            tool(
                "drive_move",
                "Move a file or folder to a different parent folder",
                {
                    "file_id": {**string, "description": "ID of the file to move"},
                    "new_parent_id": {**string, "description": "ID of the destination folder"},
                },
                ["file_id", "new_parent_id"],
            ),
            tool(
                "drive_delete",
                "Move a file or folder to trash",
                {"file_id": {**string, "description": "ID of the file to delete"}},
                ["file_id"],
            ),
            # Docs
            tool(
                "docs_get",
                "Read the full text content of a Google Doc",
                {"document_id": {**string, "description": "The document ID from its URL"}},
                ["document_id"],
            ),
            tool(
                "docs_create",
                "Create a new Google Doc",
                {"title": {**string, "description": "Title of the new document"}},
                ["title"],
            ),
            tool(
                "docs_append",
                "Append text to the end of a Google Doc",
                {
                    "document_id": {**string, "description": "The document ID"},
                    "text": {**string, "description": "Text to append"},
                },
                ["document_id", "text"],
            ),
            tool(
                "docs_replace",
                "Find and replace text in a Google Doc",
                {
                    "document_id": {**string, "description": "The document ID"},
                    "old_text": {**string, "description": "Text to find (case-sensitive)"},
                    "new_text": {**string, "description": "Replacement text"},
                },
                ["document_id", "old_text", "new_text"],
            ),
            tool(
                "docs_batch_update",
                "Apply raw Google Docs API batchUpdate requests (for advanced edits)",
                {
                    "document_id": {**string, "description": "The document ID"},
                    "requests": {
                        "type": "array",
                        "items": {"type": "object"},
                        "description": "Array of Google Docs API request objects",
                    },
                },
                ["document_id", "requests"],
            ),
            tool(
                "docs_delete",
                "Move a Google Doc to trash",
                {"document_id": {**string, "description": "The document ID to delete"}},
                ["document_id"],
            ),
            # Sheets
            tool(
                "sheets_get",
                "Read cell values from a Google Sheet range",
                {
                    "spreadsheet_id": {**string, "description": "The spreadsheet ID from its URL"},
                    "range": {**string, "description": 'A1 notation range, e.g. "Sheet1!A1:C10"'},
                },
                ["spreadsheet_id", "range"],
            ),
            tool(
                "sheets_create",
                "Create a new Google Spreadsheet",
                {
                    "title": {
                        **string,
                        "maxLength": MAX_SPREADSHEET_TITLE,
                        "description": "Title of the new spreadsheet",
                    }
                },
                ["title"],
            ),
            tool(
                "sheets_update",
                "Write values to a range in a Google Sheet",
                {
                    "spreadsheet_id": {**string, "description": "The spreadsheet ID"},
                    "range": {**string, "description": "A1 notation range to write to"},
                    "values": {**values_2d, "description": "2D array of values to write"},
                },
                ["spreadsheet_id", "range", "values"],
            ),
            tool(
                "sheets_append",
                "Append rows to the end of a Google Sheet",
                {
                    "spreadsheet_id": {**string, "description": "The spreadsheet ID"},
                    "sheet_name": {**string, "description": "Name of the sheet tab to append to"},
                    "values": {**values_2d, "description": "2D array of rows to append"},
                },
                ["spreadsheet_id", "sheet_name", "values"],
            ),
            tool(
                "sheets_clear",
                "Clear all values in a range of a Google Sheet",
                {
                    "spreadsheet_id": {**string, "description": "The spreadsheet ID"},
                    "range": {**string, "description": "A1 notation range to clear"},
                },
                ["spreadsheet_id", "range"],
            ),
            tool(
                "sheets_delete",
                "Move a Google Spreadsheet to trash",
                {"spreadsheet_id": {**string, "description": "The spreadsheet ID to delete"}},
                ["spreadsheet_id"],
            ),
            # Calendar
            tool("calendar_list_calendars", "List all calendars accessible by the user"),
            tool(
                "calendar_list_events",
                "List upcoming events from a calendar",
                {
                    "calendar_id": {**string, "description": "Calendar ID (default: 'primary')"},
                    "time_min": {**string, "description": "Start time, RFC3339 (default: now)"},
                    "time_max": {**string, "description": "End time, RFC3339"},
                    "max_results": {"type": "integer", "description": "1-100 (default 20)"},
                },
            ),
            tool(
                "calendar_search_events",
                "Search events in a calendar by free text",
                {
                    "calendar_id": {**string, "description": "Calendar ID (default: 'primary')"},
                    "query": {**string, "description": "Free-text search terms"},
                    "time_min": {**string, "description": "Start time, RFC3339 (default: now)"},
                    "time_max": {**string, "description": "End time, RFC3339"},
                    "max_results": {"type": "integer", "description": "1-100 (default 20)"},
                },
                ["query"],
            ),
            tool(
                "calendar_get_event",
                "Get full details of a calendar event",
                {
                    "calendar_id": {**string, "description": "Calendar ID (default: 'primary')"},
                    "event_id": {**string, "description": "Event ID"},
                },
                ["event_id"],
            ),
            tool(
                "calendar_create_event",
                "Create a calendar event",
                {
                    "calendar_id": {**string, "description": "Calendar ID (default: 'primary')"},
                    "summary": {**string, "description": "Event title"},
                    "start": {**string, "description": "Start time, RFC3339"},
                    "end": {**string, "description": "End time, RFC3339"},
                    "description": {**string, "description": "Event description"},
                    "location": {**string, "description": "Event location"},
                    "attendees": {
                        "type": "array",
                        "items": {"type": "string"},
                        "description": "Attendee email addresses",
                    },
                },
                ["summary", "start", "end"],
            ),
            tool(
                "calendar_update_event",
                "Update fields of an existing calendar event",
                {
                    "calendar_id": {**string, "description": "Calendar ID (default: 'primary')"},
                    "event_id": {**string, "description": "Event ID"},
                    "summary": {**string, "description": "New title"},
                    "start": {**string, "description": "New start time, RFC3339"},
                    "end": {**string, "description": "New end time, RFC3339"},
                    "description": {**string, "description": "New description"},
                    "location": {**string, "description": "New location"},
                },
                ["event_id"],
            ),
            tool(
                "calendar_delete_event",
                "Delete a calendar event",
                {
                    "calendar_id": {**string, "description": "Calendar ID (default: 'primary')"},
                    "event_id": {**string, "description": "Event ID"},
                },
                ["event_id"],
            ),
        ]

    async def _get_client(self) -> AuthorizedClient:
        """Get an authenticated client for the stored credentials.

        Raises:
            NotAuthorizedError: If no credentials are stored.
            ClientConfigError: If the OAuth client is not configured.
        """
        http_client = await self._get_http_client()
        client = get_authenticated_client(self.storage, http_client=http_client)
        if client is None:
            raise NotAuthorizedError("Not authenticated. Call the authorize tool first.")
        return client

    async def _make_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make one authenticated request to Google APIs (no retries).

        Raises:
            NotAuthorizedError: If no credentials are stored.
            httpx.HTTPStatusError: If the request fails.
        """
        client = await self._get_client()
        return await client.request(method, url, params=params, json_data=json_data)

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch tool call to appropriate handler.

        Args:
            name: Tool name.
            arguments: Tool arguments.

        Returns:
            Tool result as dictionary.

        Raises:
            ValueError: If tool name is not recognized.
        """
        handlers = {
            "authorize": self._authorize,
            # Drive
            "drive_list": self._drive_list,
            "drive_search": self._drive_search,
            "drive_get": self._drive_get,
            "drive_create_folder": self._drive_create_folder,
            "drive_move": self._drive_move,
            "drive_delete": self._drive_delete,
            # Docs
            "docs_get": self._docs_get,
            "docs_create": self._docs_create,
            "docs_append": self._docs_append,
            "docs_replace": self._docs_replace,
            "docs_batch_update": self._docs_batch_update,
            "docs_delete": self._docs_delete,
            # Sheets
            "sheets_get": self._sheets_get,
            "sheets_create": self._sheets_create,
            "sheets_update": self._sheets_update,
            "sheets_append": self._sheets_append,
            "sheets_clear": self._sheets_clear,
            "sheets_delete": self._sheets_delete,
            # Calendar
            "calendar_list_calendars": self._calendar_list_calendars,
            "calendar_list_events": self._calendar_list_events,
            "calendar_search_events": self._calendar_search_events,
            "calendar_get_event": self._calendar_get_event,
            "calendar_create_event": self._calendar_create_event,
            "calendar_update_event": self._calendar_update_event,
            "calendar_delete_event": self._calendar_delete_event,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    # =========================================================================
    # Authorization
    # =========================================================================

    async def _authorize(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Start the OAuth flow unless credentials are already stored.

        Returns:
            Authorization status, with the consent URL when a flow started.
        """
        existing = get_authenticated_client(self.storage)
        if existing is not None:
            await existing.aclose()
            return {
                "status": "authorized",
                "message": "Already authorized. You can use Google Workspace tools.",
            }

        self._flows = [flow for flow in self._flows if flow.outcome is None]
        flow = AuthorizationFlow(storage=self.storage)
        auth_url = flow.start()
        self._flows.append(flow)

        return {
            "status": "pending",
            "auth_url": auth_url,
            "message": (
                f"Open this URL in your browser to authorize:\n\n{auth_url}\n\n"
                "After authorizing, you can use all Google Workspace tools."
            ),
        }

    # =========================================================================
    # Drive
    # =========================================================================

    async def _list_drive_files(self, query: str, page_size: Any) -> list[dict[str, Any]]:
        params = {
            "q": query,
            "pageSize": page_size or 20,
            "fields": "files(id,name,mimeType,modifiedTime)",
        }
        response = await self._make_request("GET", f"{DRIVE_API_BASE}/files", params=params)
        return [
            {
                "id": item.get("id"),
                "name": item.get("name"),
                "mimeType": item.get("mimeType"),
                "modifiedTime": item.get("modifiedTime"),
            }
            for item in response.get("files", [])
        ]

    async def _drive_list(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List files, optionally restricted to one folder."""
        folder_id = arguments.get("folder_id")
        query = "trashed = false"
        if folder_id:
            query = f"'{_escape_drive_query(folder_id)}' in parents and trashed = false"

        files = await self._list_drive_files(query, arguments.get("page_size"))
        return {"files": files, "count": len(files)}

    async def _drive_search(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Search files by name."""
        _require(arguments, "query")
        term = _escape_drive_query(arguments["query"])
        query = f"name contains '{term}' and trashed = false"

        files = await self._list_drive_files(query, arguments.get("page_size"))
        return {"files": files, "count": len(files)}

    async def _drive_get(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get file metadata."""
        _require(arguments, "file_id")
        url = _file_url(arguments["file_id"])
        response = await self._make_request(
            "GET", url, params={"fields": "id,name,mimeType,modifiedTime,size,parents"}
        )
        return {
            "id": response.get("id"),
            "name": response.get("name"),
            "mimeType": response.get("mimeType"),
            "modifiedTime": response.get("modifiedTime"),
            "size": response.get("size"),
            "parents": response.get("parents", []),
        }

    async def _drive_create_folder(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create a folder, under ``parent_id`` when given."""
        _require(arguments, "name")
        body: dict[str, Any] = {"name": arguments["name"], "mimeType": FOLDER_MIME_TYPE}
        if arguments.get("parent_id"):
            body["parents"] = [arguments["parent_id"]]

        response = await self._make_request(
            "POST", f"{DRIVE_API_BASE}/files", params={"fields": "id,name"}, json_data=body
        )
        return {"status": "created", "id": response.get("id"), "name": response.get("name")}

    async def _drive_move(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Move a file by swapping its parents."""
        _require(arguments, "file_id", "new_parent_id")
        file_id = arguments["file_id"]
        new_parent_id = arguments["new_parent_id"]
        url = _file_url(file_id)

        existing = await self._make_request("GET", url, params={"fields": "parents"})
        previous_parents = ",".join(existing.get("parents", []))

        response = await self._make_request(
            "PATCH",
            url,
            params={
                "addParents": new_parent_id,
                "removeParents": previous_parents,
                "fields": "id,name,parents",
            },
            json_data={},
        )
        return {
            "status": "moved",
            "id": response.get("id", file_id),
            "name": response.get("name"),
            "parents": response.get("parents", [new_parent_id]),
        }

    async def _trash_file(self, file_id: str) -> None:
        await self._make_request(
            "PATCH", _file_url(file_id), json_data={"trashed": True}
        )

    async def _drive_delete(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Move a file to trash."""
        _require(arguments, "file_id")
        await self._trash_file(arguments["file_id"])
        return {"status": "trashed", "file_id": arguments["file_id"]}

    # =========================================================================
    # Docs
    # =========================================================================

    def _extract_doc_text(self, body: dict[str, Any]) -> str:
        """Concatenate the text runs of every paragraph in a document body."""
        parts = []
        for element in body.get("content", []):
            for run in element.get("paragraph", {}).get("elements", []):
                parts.append(run.get("textRun", {}).get("content", ""))
        return "".join(parts)

    async def _docs_get(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Read a document's title and plain text."""
        _require(arguments, "document_id")
        document_id = arguments["document_id"]
        response = await self._make_request("GET", _document_url(document_id))
        return {
            "document_id": response.get("documentId", document_id),
            "title": response.get("title"),
            "content": self._extract_doc_text(response.get("body", {})),
        }

    async def _docs_create(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create an empty document."""
        _require(arguments, "title")
        response = await self._make_request(
            "POST", f"{DOCS_API_BASE}/documents", json_data={"title": arguments["title"]}
        )
        document_id = response.get("documentId")
        return {
            "status": "created",
            "document_id": document_id,
            "title": response.get("title"),
            "url": f"https://docs.google.com/document/d/{document_id}/edit",
        }

    async def _docs_append(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Insert text just before the document's final newline."""
        _require(arguments, "document_id", "text")
        document_id = arguments["document_id"]
        url = _document_url(document_id)

        doc = await self._make_request("GET", url, params={"fields": "body.content"})
        content = doc.get("body", {}).get("content", [])
        end_index = content[-1].get("endIndex", 1) if content else 1

        await self._make_request(
            "POST",
            f"{url}:batchUpdate",
            json_data={
                "requests": [
                    {
                        "insertText": {
                            "location": {"index": max(end_index - 1, 1)},
                            "text": arguments["text"],
                        }
                    }
                ]
            },
        )
        return {"status": "appended", "document_id": document_id}

    async def _docs_replace(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Replace every case-sensitive occurrence of ``old_text``."""
        _require(arguments, "document_id", "old_text")
        document_id = arguments["document_id"]
        new_text = arguments.get("new_text", "")

        response = await self._make_request(
            "POST",
            f"{_document_url(document_id)}:batchUpdate",
            json_data={
                "requests": [
                    {
                        "replaceAllText": {
                            "containsText": {"text": arguments["old_text"], "matchCase": True},
                            "replaceText": new_text,
                        }
                    }
                ]
            },
        )
        replies = response.get("replies") or [{}]
        changed = replies[0].get("replaceAllText", {}).get("occurrencesChanged", 0)
        return {
            "status": "replaced",
            "document_id": document_id,
            "occurrences_changed": changed,
        }

    async def _docs_batch_update(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Pass raw batchUpdate requests through to the Docs API."""
        _require(arguments, "document_id", "requests")
        requests = arguments["requests"]
        if not isinstance(requests, list):
            raise ValueError("requests must be an array of Docs API request objects")

        document_id = arguments["document_id"]
        response = await self._make_request(
            "POST",
            f"{_document_url(document_id)}:batchUpdate",
            json_data={"requests": requests},
        )
        return {
            "status": "updated",
            "document_id": document_id,
            "replies": response.get("replies", []),
        }

    async def _docs_delete(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Move a document to trash."""
        _require(arguments, "document_id")
        await self._trash_file(arguments["document_id"])
        return {"status": "trashed", "document_id": arguments["document_id"]}

    # =========================================================================
    # Sheets
    # =========================================================================

    def _values_url(self, spreadsheet_id: str, range_notation: str) -> str:
        spreadsheet = quote(spreadsheet_id, safe="")
        return f"{SHEETS_API_BASE}/spreadsheets/{spreadsheet}/values/{quote(range_notation, safe='')}"

    async def _sheets_get(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Read values from an A1 range."""
        _require(arguments, "spreadsheet_id", "range")
        spreadsheet_id = arguments["spreadsheet_id"]
        response = await self._make_request(
            "GET", self._values_url(spreadsheet_id, arguments["range"])
        )
        values = response.get("values", [])
        return {
            "spreadsheet_id": spreadsheet_id,
            "range": response.get("range", arguments["range"]),
            "values": values,
            "row_count": len(values),
        }

    async def _sheets_create(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create a spreadsheet."""
        _require(arguments, "title")
        title = arguments["title"]
        if len(title) > MAX_SPREADSHEET_TITLE:
            raise ValueError(f"title must be at most {MAX_SPREADSHEET_TITLE} characters")

        response = await self._make_request(
            "POST",
            f"{SHEETS_API_BASE}/spreadsheets",
            params={"fields": "spreadsheetId,properties.title"},
            json_data={"properties": {"title": title}},
        )
        spreadsheet_id = response.get("spreadsheetId", "")
        return {
            "status": "created",
            "spreadsheet_id": spreadsheet_id,
            "title": response.get("properties", {}).get("title", title),
            "url": f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}",
        }

    async def _sheets_update(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Overwrite values in an A1 range."""
        _require(arguments, "spreadsheet_id", "range", "values")
        spreadsheet_id = arguments["spreadsheet_id"]
        cell_range = arguments["range"]

        response = await self._make_request(
            "PUT",
            self._values_url(spreadsheet_id, cell_range),
            params={"valueInputOption": "USER_ENTERED"},
            json_data={"values": arguments["values"]},
        )
        return {
            "spreadsheet_id": spreadsheet_id,
            "updated_range": response.get("updatedRange", cell_range),
            "updated_cells": response.get("updatedCells", 0),
        }

    async def _sheets_append(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Append rows after the last row with data in a sheet."""
        _require(arguments, "spreadsheet_id", "sheet_name", "values")
        spreadsheet_id = arguments["spreadsheet_id"]
        sheet_name = arguments["sheet_name"]

        response = await self._make_request(
            "POST",
            f"{self._values_url(spreadsheet_id, sheet_name)}:append",
            params={"valueInputOption": "USER_ENTERED"},
            json_data={"values": arguments["values"]},
        )
        updates = response.get("updates", {})
        return {
            "spreadsheet_id": spreadsheet_id,
            "sheet_name": sheet_name,
            "updated_range": updates.get("updatedRange", ""),
            "updated_rows": updates.get("updatedRows", 0),
        }

    async def _sheets_clear(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Clear values in an A1 range."""
        _require(arguments, "spreadsheet_id", "range")
        spreadsheet_id = arguments["spreadsheet_id"]
        cell_range = arguments["range"]

        response = await self._make_request(
            "POST", f"{self._values_url(spreadsheet_id, cell_range)}:clear", json_data={}
        )
        return {
            "spreadsheet_id": spreadsheet_id,
            "cleared_range": response.get("clearedRange", cell_range),
        }

    async def _sheets_delete(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Move a spreadsheet to trash."""
        _require(arguments, "spreadsheet_id")
        await self._trash_file(arguments["spreadsheet_id"])
        return {"status": "trashed", "spreadsheet_id": arguments["spreadsheet_id"]}

    # =========================================================================
    # Calendar
    # =========================================================================

    def _events_url(self, calendar_id: str, event_id: str | None = None) -> str:
        url = f"{CALENDAR_API_BASE}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            url = f"{url}/{quote(event_id, safe='')}"
        return url

    def _format_event(self, item: dict[str, Any]) -> dict[str, Any]:
        return {
            "id": item.get("id"),
            "summary": item.get("summary"),
            "start": _event_time(item.get("start")),
            "end": _event_time(item.get("end")),
            "location": item.get("location"),
            "status": item.get("status"),
        }

    async def _calendar_list_calendars(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List calendars the user can access."""
        response = await self._make_request(
            "GET",
            f"{CALENDAR_API_BASE}/users/me/calendarList",
            params={"fields": "items(id,summary,primary)"},
        )
        calendars = [
            {
                "id": item.get("id"),
                "summary": item.get("summary"),
                "primary": item.get("primary", False),
            }
            for item in response.get("items", [])
        ]
        return {"calendars": calendars, "count": len(calendars)}

    async def _query_events(
        self, arguments: dict[str, Any], query: str | None = None
    ) -> dict[str, Any]:
        calendar_id = arguments.get("calendar_id") or "primary"
        params: dict[str, Any] = {
            "timeMin": arguments.get("time_min") or datetime.now(timezone.utc).isoformat(),
            "maxResults": _clamp_results(arguments.get("max_results")),
            "singleEvents": True,
            "orderBy": "startTime",
            "fields": "items(id,summary,start,end,location,status)",
        }
        if arguments.get("time_max"):
            params["timeMax"] = arguments["time_max"]
        if query:
            params["q"] = query

        response = await self._make_request("GET", self._events_url(calendar_id), params=params)
        events = [self._format_event(item) for item in response.get("items", [])]
        return {"calendar_id": calendar_id, "events": events, "count": len(events)}

    async def _calendar_list_events(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List upcoming events."""
        return await self._query_events(arguments)

    async def _calendar_search_events(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Search events by free text."""
        _require(arguments, "query")
        return await self._query_events(arguments, query=arguments["query"])

    async def _calendar_get_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get one event with description and attendees."""
        _require(arguments, "event_id")
        calendar_id = arguments.get("calendar_id") or "primary"
        item = await self._make_request(
            "GET",
            self._events_url(calendar_id, arguments["event_id"]),
            params={
                "fields": "id,summary,start,end,location,description,attendees,status,htmlLink"
            },
        )
        event = self._format_event(item)
        event.update(
            {
                "description": item.get("description"),
                "link": item.get("htmlLink"),
                "attendees": [
                    {"email": a.get("email"), "response_status": a.get("responseStatus")}
                    for a in item.get("attendees", [])
                ],
            }
        )
        return event

    async def _calendar_create_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create a timed event."""
        _require(arguments, "summary", "start", "end")
        calendar_id = arguments.get("calendar_id") or "primary"

        body: dict[str, Any] = {
            "summary": arguments["summary"],
            "start": {"dateTime": arguments["start"]},
            "end": {"dateTime": arguments["end"]},
        }
        if arguments.get("description"):
            body["description"] = arguments["description"]
        if arguments.get("location"):
            body["location"] = arguments["location"]
        if arguments.get("attendees"):
            body["attendees"] = [{"email": email} for email in arguments["attendees"]]

        response = await self._make_request(
            "POST",
            self._events_url(calendar_id),
            params={"fields": "id,summary,htmlLink"},
            json_data=body,
        )
        return {
            "status": "created",
            "id": response.get("id"),
            "summary": response.get("summary"),
            "link": response.get("htmlLink"),
        }

    async def _calendar_update_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Patch only the fields that were provided."""
        _require(arguments, "event_id")
        calendar_id = arguments.get("calendar_id") or "primary"

        body: dict[str, Any] = {}
        for field in ("summary", "description", "location"):
            if arguments.get(field) is not None:
                body[field] = arguments[field]
        for field in ("start", "end"):
            if arguments.get(field) is not None:
                body[field] = {"dateTime": arguments[field]}

        if not body:
            raise ValueError(
                "At least one field (summary, start, end, description, location) "
                "must be provided for update"
            )

        response = await self._make_request(
            "PATCH",
            self._events_url(calendar_id, arguments["event_id"]),
            params={"fields": "id,summary"},
            json_data=body,
        )
        return {"status": "updated", "id": response.get("id"), "summary": response.get("summary")}

    async def _calendar_delete_event(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Delete an event."""
        _require(arguments, "event_id")
        calendar_id = arguments.get("calendar_id") or "primary"
        await self._make_request("DELETE", self._events_url(calendar_id, arguments["event_id"]))
        return {"status": "deleted", "event_id": arguments["event_id"]}

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.close()


def main() -> None:
    """Entry point for the Google Workspace MCP server."""
    server = GoogleWorkspaceServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
