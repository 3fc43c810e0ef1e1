"""Load optional engine configuration from `.taskforest/config.yaml`."""

from __future__ import annotations

from pathlib import Path
from typing import Any

from .constants import (
    ARTIFACTS_DIR,
    CONFIG_FILE,
    DEFAULT_BACKUP_LIMIT,
    DEFAULT_TAG,
    EVENTS_FILE,
    STATE_DIR_NAME,
    TASKS_FILE,
)
from .io_utils import _load_data_with_error
from .utils import _coerce_int

VALID_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def load_engine_config(project_dir: Path) -> tuple[dict[str, Any], str | None]:
    """Load the optional engine config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing, returns `({}, None)`.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return {}, None
    data, err = _load_data_with_error(path, {})
    if err:
        return {}, err
    return data, None


def _get_nested(config: dict[str, Any], *keys: str) -> Any:
    cur: Any = config
    for key in keys:
        if not isinstance(cur, dict):
            return None
        cur = cur.get(key)
    return cur


def get_store_config(config: dict[str, Any]) -> dict[str, Any]:
    """Extract the store block with defaults applied.

    Args:
        config: Engine configuration dictionary.

    Returns:
        A mapping with `tasks_file`, `backup_limit`, `auto_persist` and `default_tag`.
    """
    raw = _get_nested(config, "store")
    raw = raw if isinstance(raw, dict) else {}

    tasks_file = raw.get("tasks_file")
    if not isinstance(tasks_file, str) or not tasks_file.strip():
        tasks_file = TASKS_FILE

    backup_limit = _coerce_int(raw.get("backup_limit"), DEFAULT_BACKUP_LIMIT)
    if backup_limit < 0:
        backup_limit = DEFAULT_BACKUP_LIMIT

    auto_persist = raw.get("auto_persist")
    if not isinstance(auto_persist, bool):
        auto_persist = True

    default_tag = raw.get("default_tag")
    if not isinstance(default_tag, str) or not default_tag.strip():
        default_tag = DEFAULT_TAG

    return {
        "tasks_file": tasks_file.strip(),
        "backup_limit": backup_limit,
        "auto_persist": auto_persist,
        "default_tag": default_tag.strip(),
    }


def get_log_level(config: dict[str, Any]) -> str:
    """Return the configured log level, or ``INFO`` when unset or invalid."""
    raw = _get_nested(config, "logging", "level")
    if isinstance(raw, str) and raw.strip().upper() in VALID_LOG_LEVELS:
        return raw.strip().upper()
    return "INFO"


def get_events_log_path(config: dict[str, Any], state_dir: Path) -> Path | None:
    """Resolve the lifecycle event log path.

    Returns ``None`` when the config explicitly disables the log with
    ``events: {log_file: null}``.
    """
    events = _get_nested(config, "events")
    if isinstance(events, dict) and "log_file" in events:
        raw = events.get("log_file")
        if raw is None or raw is False:
            return None
        if isinstance(raw, str) and raw.strip():
            candidate = Path(raw.strip())
            return candidate if candidate.is_absolute() else state_dir / candidate
    return state_dir / ARTIFACTS_DIR / EVENTS_FILE
