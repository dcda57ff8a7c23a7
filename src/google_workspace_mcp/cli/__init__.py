"""Command-line interface for google-workspace-mcp."""
