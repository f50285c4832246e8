"""Resolved settings for the InfoFlow sync engine.

Reads InfoFlow connection and vault settings from CLI args, environment
variables, .env files, and YAML config file fallbacks.

Precedence (highest to lowest):
    CLI args > Environment variables > .env file > YAML config > Built-in defaults

Environment variables:
    INFOFLOW_ENDPOINT: InfoFlow base URL (optional, default: https://www.infoflow.app)
    INFOFLOW_API_TOKEN: Bearer token for the export API (required to sync)
    INFOFLOW_VAULT_ROOT: Vault directory (optional, default: current directory)
    INFOFLOW_TARGET_FOLDER: Vault folder for synced notes (optional, default: InfoFlow)
    INFOFLOW_SYNC_FREQUENCY: Auto-sync interval in minutes, 0 disables (optional, default: 60)
    INFOFLOW_RESYNC_DELETED: Re-import notes deleted locally (optional, default: true)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "https://www.infoflow.app"
DEFAULT_TARGET_FOLDER = "InfoFlow"
DEFAULT_FILE_NAME_TEMPLATE = "{{{title}}}_{{id}}_{{itemType}}"
DEFAULT_NOTE_TEMPLATE = """# {{title}}

{{#url}}
Source: {{{url}}}
{{/url}}

{{{content}}}

## Highlights
{{#notes}}
> {{{content}}}
{{#quotedText}}
Source: {{{quotedText}}}
{{/quotedText}}

{{/notes}}
{{^notes}}
_No highlights yet._
{{/notes}}
"""
DEFAULT_SYNC_FREQUENCY = 60
DEFAULT_STATE_FILE = ".infoflow_sync/state.json"


@dataclass
class SyncSettings:
    endpoint: str = DEFAULT_ENDPOINT
    api_token: str = ""
    vault_root: str = "."
    target_folder: str = DEFAULT_TARGET_FOLDER
    file_name_template: str = DEFAULT_FILE_NAME_TEMPLATE
    note_template: str = DEFAULT_NOTE_TEMPLATE
    sync_frequency: int = DEFAULT_SYNC_FREQUENCY
    resync_deleted: bool = True
    state_file: str | None = None
    from_date: str | None = None
    to_date: str | None = None
    tags: list[str] = field(default_factory=list)
    folders: list[str] = field(default_factory=list)
    insecure: bool = False
    debug: bool = False

    @property
    def state_path(self) -> Path:
        """Absolute path of the state file (relative paths resolve against the vault)."""
        raw = Path(self.state_file or DEFAULT_STATE_FILE).expanduser()
        if raw.is_absolute():
            return raw
        return Path(self.vault_root).expanduser().resolve() / raw


def validate_settings(settings: SyncSettings) -> None:
    """Validate settings values and raise ValueError if invalid.

    A missing API token is not an error here; the engine reports it as a
    configuration error when a run is attempted.

    Args:
        settings: SyncSettings instance to validate.

    Raises:
        ValueError: If the endpoint URL or a numeric value is invalid.
    """
    settings.endpoint = settings.endpoint.strip()

    if not settings.endpoint.startswith(("http://", "https://")):
        raise ValueError(
            f"Invalid InfoFlow endpoint '{settings.endpoint}': must start with http:// or https://"
        )

    parsed = urlparse(settings.endpoint)
    if not parsed.hostname:
        raise ValueError(
            f"Invalid InfoFlow endpoint '{settings.endpoint}': URL must include a hostname"
        )

    settings.endpoint = settings.endpoint.removesuffix("/")

    if not (0 <= settings.sync_frequency <= 10080):
        raise ValueError(
            f"Invalid sync frequency '{settings.sync_frequency}': must be between 0 and 10080 minutes"
        )

    if not settings.target_folder.strip().strip("/"):
        raise ValueError("Target folder cannot be empty")

    if settings.insecure:
        logger.warning(
            "WARNING: SSL verification disabled (insecure=True). Use only for development."
        )


def _get_bool_env(key: str) -> bool | None:
    """Return True/False from env var, or None if unset."""
    val = os.getenv(key)
    if val is None:
        return None
    return val.lower() in ("true", "1", "yes", "on")


def load_settings(
    endpoint: str | None = None,
    api_token: str | None = None,
    vault_root: str | None = None,
    target_folder: str | None = None,
    insecure: bool = False,
    debug: bool = False,
    yaml_fallbacks: dict | None = None,
) -> SyncSettings:
    """Load settings with unified precedence.

    Resolution order for each field (highest to lowest):
        CLI arg > env var / .env > yaml_fallbacks > built-in default

    The caller is responsible for calling ``load_dotenv()`` before this
    function so that .env values are available via ``os.getenv()``.

    Args:
        endpoint: Override InfoFlow endpoint.
        api_token: Override API token.
        vault_root: Override vault directory.
        target_folder: Override target folder inside the vault.
        insecure: Skip SSL verification (CLI flag).
        debug: Enable debug logging (CLI flag).
        yaml_fallbacks: Flat dict of values from the YAML ``infoflow`` and
            ``sync`` sections (see ``config_schema.settings_fallbacks``).

    Returns:
        Validated SyncSettings instance.

    Raises:
        ValueError: If a value is malformed after checking all sources.
    """
    fb = yaml_fallbacks or {}

    # --- String fields: CLI > env > YAML > default ---

    final_endpoint = (
        endpoint
        or os.getenv("INFOFLOW_ENDPOINT")
        or fb.get("endpoint")
        or DEFAULT_ENDPOINT
    )
    final_token = (
        api_token or os.getenv("INFOFLOW_API_TOKEN") or fb.get("api_token") or ""
    )
    final_vault = (
        vault_root or os.getenv("INFOFLOW_VAULT_ROOT") or fb.get("vault_root") or "."
    )
    final_folder = (
        target_folder
        or os.getenv("INFOFLOW_TARGET_FOLDER")
        or fb.get("target_folder")
        or DEFAULT_TARGET_FOLDER
    )

    # --- Boolean fields: CLI > env > YAML > default ---

    if insecure:
        final_insecure = True
    else:
        env_insecure = _get_bool_env("INFOFLOW_INSECURE")
        if env_insecure is not None:
            final_insecure = env_insecure
        else:
            final_insecure = bool(fb.get("insecure", False))

    if debug:
        final_debug = True
    else:
        env_debug = _get_bool_env("INFOFLOW_DEBUG")
        if env_debug is not None:
            final_debug = env_debug
        else:
            final_debug = bool(fb.get("debug", False))

    env_resync = _get_bool_env("INFOFLOW_RESYNC_DELETED")
    if env_resync is not None:
        final_resync = env_resync
    else:
        final_resync = bool(fb.get("resync_deleted", True))

    # --- Numeric fields: env > YAML > default ---

    frequency_raw = os.getenv("INFOFLOW_SYNC_FREQUENCY")
    if frequency_raw is not None:
        try:
            final_frequency = int(frequency_raw)
        except ValueError:
            raise ValueError(
                f"Invalid INFOFLOW_SYNC_FREQUENCY '{frequency_raw}': must be a whole number of minutes"
            ) from None
    elif fb.get("sync_frequency") is not None:
        final_frequency = int(fb["sync_frequency"])
    else:
        final_frequency = DEFAULT_SYNC_FREQUENCY

    settings = SyncSettings(
        endpoint=final_endpoint.strip(),
        api_token=final_token.strip(),
        vault_root=final_vault,
        target_folder=final_folder.strip(),
        file_name_template=fb.get("file_name_template")
        or DEFAULT_FILE_NAME_TEMPLATE,
        note_template=fb.get("note_template") or DEFAULT_NOTE_TEMPLATE,
        sync_frequency=final_frequency,
        resync_deleted=final_resync,
        state_file=fb.get("state_file"),
        from_date=fb.get("from_date"),
        to_date=fb.get("to_date"),
        tags=list(fb.get("tags") or []),
        folders=list(fb.get("folders") or []),
        insecure=final_insecure,
        debug=final_debug,
    )

    validate_settings(settings)

    return settings
