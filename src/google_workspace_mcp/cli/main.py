"""Command-line interface for google-workspace-mcp."""

import os
import sys
import webbrowser

import click

from google_workspace_mcp.__version__ import __version__
from google_workspace_mcp.auth.oauth_client import CLIENT_ID_ENV, CLIENT_SECRET_ENV


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Google Workspace MCP Server - Connect Claude to Google Workspace APIs.

    Tools are provided across:
    - Drive (list, search, folders, move, trash)
    - Docs (read, create, append, replace)
    - Sheets (read, write, append, clear)
    - Calendar (calendars, events)
    """
    pass


@main.command()
@click.option("--client-id", envvar=CLIENT_ID_ENV, help="Google OAuth client ID")
@click.option("--client-secret", envvar=CLIENT_SECRET_ENV, help="Google OAuth client secret")
@click.option("--no-browser", is_flag=True, help="Print the consent URL without opening a browser")
@click.option(
    "--timeout",
    type=float,
    default=300.0,
    show_default=True,
    help="Seconds to wait for the browser callback",
)
def setup(
    client_id: str | None, client_secret: str | None, no_browser: bool, timeout: float
) -> None:
    """Authorize Google Workspace access from the terminal.

    This will:
    1. Start a local callback listener and print the consent URL
    2. Open the URL in your browser (unless --no-browser)
    3. Store the tokens at ~/.google-workspace-mcp/tokens.json

    Requires:
    - GOOGLE_CLIENT_ID environment variable or --client-id option
    - GOOGLE_CLIENT_SECRET environment variable or --client-secret option
    """
    from google_workspace_mcp.auth import (
        AuthorizationFlow,
        ClientConfigError,
        FlowState,
        TokenStatus,
        TokenStorage,
    )

    storage = TokenStorage()

    if storage.get_status() in (TokenStatus.VALID, TokenStatus.EXPIRED):
        click.echo("✓ Already authorized!")
        click.echo(f"Token stored at: {storage.token_path}")
        click.echo("")

        if not click.confirm("Re-authorize?"):
            return

    if not client_id or not client_secret:
        click.echo("❌ Error: OAuth client credentials required")
        click.echo("")
        click.echo("Set environment variables:")
        click.echo(f"  export {CLIENT_ID_ENV}='your-client-id'")
        click.echo(f"  export {CLIENT_SECRET_ENV}='your-client-secret'")
        click.echo("")
        click.echo("Or pass as options:")
        click.echo("  google-workspace-mcp setup --client-id=... --client-secret=...")
        sys.exit(1)

    os.environ[CLIENT_ID_ENV] = client_id
    os.environ[CLIENT_SECRET_ENV] = client_secret

    flow = AuthorizationFlow(storage=storage, timeout=timeout)
    try:
        auth_url = flow.start()
    except (ClientConfigError, OSError) as e:
        click.echo(f"❌ Could not start authorization: {e}")
        sys.exit(1)

    click.echo("Open this URL in your browser to authorize:")
    click.echo("")
    click.echo(auth_url)
    click.echo("")
    if not no_browser:
        webbrowser.open(auth_url)

    click.echo("Waiting for authorization...")
    try:
        flow.wait()
    except KeyboardInterrupt:
        flow.close()
        click.echo("\nAuthorization cancelled.")
        sys.exit(1)

    if flow.outcome == FlowState.SUCCEEDED:
        click.echo("✓ Authorization successful!")
        click.echo(f"Token stored at: {storage.token_path}")
        click.echo("")
        click.echo("Run 'google-workspace-mcp doctor' to verify setup.")
    elif flow.outcome == FlowState.TIMED_OUT:
        click.echo("❌ Timed out waiting for authorization.")
        sys.exit(1)
    else:
        click.echo(f"❌ Authorization failed: {flow.failure_reason or 'cancelled'}")
        sys.exit(1)


@main.command()
def mcp() -> None:
    """Start the MCP server for Claude Desktop integration.

    Starts the stdio MCP server. If no credentials are stored yet, call the
    'authorize' tool from Claude or run 'google-workspace-mcp setup'.

    This command is typically invoked by Claude Desktop via the MCP protocol.
    """
    from google_workspace_mcp.auth import TokenStatus, TokenStorage
    from google_workspace_mcp.server import main as server_main

    status = TokenStorage().get_status()
    if status in (TokenStatus.MISSING, TokenStatus.INVALID):
        click.echo("Not authorized yet. Use the 'authorize' tool to connect.", err=True)

    # Start the MCP server (runs indefinitely)
    try:
        click.echo("Starting Google Workspace MCP server...", err=True)
        server_main()
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except Exception as e:
        click.echo(f"❌ Server error: {e}", err=True)
        sys.exit(1)


@main.command()
def doctor() -> None:
    """Check installation and authentication status.

    Verifies:
    1. Python dependencies installed
    2. OAuth client configured
    3. Token validity and granted scopes
    """
    from google_workspace_mcp.auth import SCOPES, TokenStatus, TokenStorage

    click.echo("Google Workspace MCP Status:")
    click.echo("")

    # Check dependencies
    click.echo("Dependencies:")
    try:
        import google.auth  # noqa: F401
        import google_auth_oauthlib  # noqa: F401
        import mcp  # noqa: F401

        click.echo("  ✓ google-auth installed")
        click.echo("  ✓ google-auth-oauthlib installed")
        click.echo("  ✓ mcp installed")
    except ImportError as e:
        click.echo(f"  ❌ Missing dependency: {e}")
        sys.exit(1)

    click.echo("")

    # Check client configuration
    click.echo("OAuth client:")
    configured = True
    for name in (CLIENT_ID_ENV, CLIENT_SECRET_ENV):
        if os.environ.get(name):
            click.echo(f"  ✓ {name} set")
        else:
            click.echo(f"  ❌ {name} not set")
            configured = False

    click.echo("")

    # Check authentication
    storage = TokenStorage()
    status = storage.get_status()
    record = storage.load()

    click.echo("Authentication:")
    click.echo(f"  Token file: {storage.token_path}")

    if status == TokenStatus.MISSING:
        click.echo("  ❌ Not authorized")
    elif status == TokenStatus.INVALID:
        click.echo("  ❌ Token file corrupted")
    elif status == TokenStatus.EXPIRED:
        click.echo("  ⚠️  Token expired (refreshes automatically on use)")
    else:
        click.echo("  ✓ Authorized")

    if record is not None:
        if record.expiry is not None:
            click.echo(f"  Token expires: {record.expiry.strftime('%Y-%m-%d %H:%M:%S UTC')}")
        if not record.refresh_token:
            click.echo("  ⚠️  No refresh token stored")
        missing = record.missing_scopes(SCOPES)
        if missing:
            click.echo("  ⚠️  Missing scopes (delete the token file and re-authorize):")
            for scope in missing:
                click.echo(f"    - {scope}")
        else:
            click.echo(f"  Scopes: {len(record.scopes)} granted")

    click.echo("")

    if configured and status in (TokenStatus.VALID, TokenStatus.EXPIRED):
        click.echo("✓ Ready to use!")
    else:
        click.echo("❌ Setup required. Run 'google-workspace-mcp setup' to authorize.")
        sys.exit(1)


if __name__ == "__main__":
    main()
