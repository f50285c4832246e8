"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover (set a token, wait for a running sync) without human help.
"""

import mcp.types as types

from ...sync.errors import (
    RemoteSourceError,
    SyncAlreadyRunningError,
    SyncConfigurationError,
    TemplateError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (configuration_error, already_running,
            remote_error, validation_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("already_running", "Sync in progress", "Retry in a few minutes.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(error: Exception) -> types.CallToolResult:
    """Translate a sync engine exception into a structured error response."""
    match error:
        case TemplateError():
            return build_error_response(
                "configuration_error",
                str(error),
                "Fix file_name_template or note_template in the sync "
                "section of config.yml, then retry.",
            )
        case SyncConfigurationError():
            return build_error_response(
                "configuration_error",
                str(error),
                "Set INFOFLOW_API_TOKEN (or api_token in config.yml) and "
                "restart the server.",
            )
        case SyncAlreadyRunningError():
            return build_error_response(
                "already_running",
                str(error),
                "Wait for the running sync to finish, then check "
                "infoflow_sync_status. Locks older than 10 minutes are "
                "cleared automatically.",
            )
        case RemoteSourceError():
            return build_error_response(
                "remote_error",
                str(error),
                "Check INFOFLOW_ENDPOINT, the API token and network "
                "access, then retry. No cursor progress was lost.",
            )
        case _:
            return build_error_response(
                "server_error",
                str(error) or type(error).__name__,
                "Check the server log for details and retry.",
            )
