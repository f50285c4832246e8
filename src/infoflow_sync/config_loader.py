"""
YAML config files for infoflow_sync.

A config file has up to three sections, ``infoflow``, ``sync`` and
``logging`` (see ``config_schema``).  Files are found by convention and
merged section by section, so a project file can override
``sync.target_folder`` while the API token stays in the global file.

Two YAML extensions are supported:

- ``!include path``: a ``.yml``/``.yaml`` file is parsed in place; any
  other file (typically a long note template) is inserted as text.
- ``${VAR}`` / ``${VAR:-default}`` in scalars, expanded from the
  environment.  Included template text is never expanded.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "INFOFLOW_SYNC_CONFIG"
CONFIG_DIR_NAME = ".infoflow_sync"
GLOBAL_CONFIG = Path("~/.config/infoflow_sync/config.yml")

_YAML_SUFFIXES = {".yml", ".yaml"}
_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+?)(?::-(?P<default>.*?))?\}")


class IncludedText(str):
    """Text pulled in by ``!include`` from a non-YAML file."""


# ---------------------------------------------------------------------------
# Environment references
# ---------------------------------------------------------------------------


def interpolate_env_vars(value: str) -> str:
    """Expand ``${VAR}`` and ``${VAR:-default}`` references in *value*.

    An unset or empty VAR yields *default*, or ``""`` without one.  A
    ``${`` with no closing brace is left alone.
    """

    def _lookup(ref: re.Match) -> str:
        return os.environ.get(ref["name"]) or ref["default"] or ""

    return _ENV_REF.sub(_lookup, value)


def expand_env(node: Any) -> Any:
    """Apply ``interpolate_env_vars`` to every config scalar under *node*."""
    match node:
        case IncludedText():
            return node
        case str():
            return interpolate_env_vars(node)
        case dict():
            return {key: expand_env(value) for key, value in node.items()}
        case list():
            return [expand_env(item) for item in node]
        case _:
            return node


# ---------------------------------------------------------------------------
# Loading with !include
# ---------------------------------------------------------------------------


class ConfigLoader(yaml.SafeLoader):
    """SafeLoader that knows ``!include``.

    ``chain`` holds the files currently being loaded, outermost first, so
    relative includes resolve against the innermost one and cycles are
    caught.
    """

    chain: tuple[Path, ...] = ()


def _include(loader: ConfigLoader, node: yaml.ScalarNode) -> Any:
    target = Path(loader.construct_scalar(node)).expanduser()
    if not target.is_absolute():
        target = loader.chain[-1].parent / target
    target = target.resolve()

    if not target.is_file():
        raise FileNotFoundError(
            f"Include file not found: {target} (referenced from {loader.chain[-1]})"
        )
    if target.suffix.lower() in _YAML_SUFFIXES:
        return load_yaml_file(target, loader.chain)
    return IncludedText(target.read_text(encoding="utf-8"))


ConfigLoader.add_constructor("!include", _include)


def load_yaml_file(path: Path, chain: tuple[Path, ...] = ()) -> Any:
    """Parse one config file, following ``!include`` tags.

    Raises:
        ValueError: If an include refers back to a file already being loaded.
        FileNotFoundError: If an included file does not exist.
        yaml.YAMLError: On invalid YAML.
    """
    path = path.resolve()
    if path in chain:
        cycle = " -> ".join(str(p) for p in (*chain, path))
        raise ValueError(f"Circular include detected: {cycle}")

    with path.open(encoding="utf-8") as fh:
        loader = ConfigLoader(fh)
        loader.chain = (*chain, path)
        try:
            return loader.get_single_data()
        finally:
            loader.dispose()


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


def discover_config_files() -> list[Path]:
    """Return existing config files, highest precedence first.

    1. The file named by ``INFOFLOW_SYNC_CONFIG``
    2. ``.infoflow_sync/config.yml`` (or ``config.yaml``) in the CWD
    3. ``~/.config/infoflow_sync/config.yml``
    """
    project = Path.cwd() / CONFIG_DIR_NAME
    candidates = [
        project / "config.yml",
        project / "config.yaml",
        GLOBAL_CONFIG.expanduser(),
    ]
    explicit = os.environ.get(CONFIG_ENV_VAR)
    if explicit:
        candidates.insert(0, Path(explicit).expanduser().resolve())
    return [path for path in candidates if path.exists()]


_STARTER_CONFIG = """\
# infoflow-sync configuration
#
# Every key can also come from the environment:
#   INFOFLOW_ENDPOINT, INFOFLOW_API_TOKEN, INFOFLOW_VAULT_ROOT,
#   INFOFLOW_TARGET_FOLDER, INFOFLOW_SYNC_FREQUENCY, INFOFLOW_RESYNC_DELETED
#
# infoflow:
#   endpoint: https://www.infoflow.app
#   api_token: ${INFOFLOW_API_TOKEN}
#   tags: []
#   folders: []
#
# sync:
#   vault_root: ~/Notes
#   target_folder: InfoFlow
#   file_name_template: "{{{title}}}_{{id}}_{{itemType}}"
#   note_template: !include note_template.md
#   sync_frequency: 60
#   resync_deleted: true
#
# logging:
#   level: INFO
#   file: null
"""


def ensure_config() -> Path:
    """Return the active config file, writing a commented starter if none exists."""
    existing = discover_config_files()
    if existing:
        return existing[0]

    path = Path.cwd() / CONFIG_DIR_NAME / "config.yml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(_STARTER_CONFIG, encoding="utf-8")
    logger.info("Created starter config: %s", path)
    return path


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_sections(
    base: dict[str, Any], override: dict[str, Any]
) -> dict[str, Any]:
    """Merge two config mappings one section deep.

    Keys inside a section of *override* replace the same keys of *base*;
    non-mapping values replace wholesale.
    """
    merged = dict(base)
    for section, value in override.items():
        current = merged.get(section)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[section] = {**current, **value}
        else:
            merged[section] = value
    return merged


def load_hierarchical_config() -> dict[str, Any]:
    """Load every discovered config file and merge them, project over global.

    Returns ``{}`` when there is no config file.
    """
    merged: dict[str, Any] = {}
    for path in reversed(discover_config_files()):
        data = load_yaml_file(path)
        if data is None:
            continue
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring %s: expected a mapping at the top level, got %s",
                path,
                type(data).__name__,
            )
            continue
        logger.debug("Loaded config file %s", path)
        merged = merge_sections(merged, expand_env(data))
    return merged
