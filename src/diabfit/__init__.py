"""DiabFit Health: diabetes and GLP-1 self-management MCP server."""

__version__ = "0.1.0"
