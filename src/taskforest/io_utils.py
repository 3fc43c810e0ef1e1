from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Callable, TextIO

import yaml

from .utils import _now_iso


def _is_yaml(path: Path) -> bool:
    return path.suffix in {".yaml", ".yml"}


def _atomic_write(path: Path, dump: Callable[[TextIO], None]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as handle:
            dump(handle)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _atomic_write_json(path: Path, data: dict[str, Any]) -> None:
    _atomic_write(path, lambda handle: json.dump(data, handle, indent=2, ensure_ascii=False))


def _atomic_write_yaml(path: Path, data: dict[str, Any]) -> None:
    _atomic_write(
        path,
        lambda handle: yaml.safe_dump(
            data,
            handle,
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        ),
    )


def _save_data(path: Path, data: dict[str, Any]) -> None:
    if _is_yaml(path):
        _atomic_write_yaml(path, data)
    else:
        _atomic_write_json(path, data)


def _load_data_with_error(
    path: Path,
    default: dict[str, Any],
) -> tuple[dict[str, Any], str | None]:
    """
    Load JSON/YAML and return (data, error_message).

    Parse and IO failures are reported so callers can avoid overwriting
    corrupted durable state files.
    """
    if not path.exists():
        return default, None
    try:
        with open(path, "r", encoding="utf-8") as handle:
            if _is_yaml(path):
                data = yaml.safe_load(handle)
            else:
                data = json.load(handle)
        if data is None:
            return default, None
        if not isinstance(data, dict):
            return default, f"{path.name}: expected object, got {type(data).__name__}"
        return data, None
    except OSError as exc:
        return default, f"{path.name}: {exc.__class__.__name__}: {exc}"
    except json.JSONDecodeError as exc:
        return default, f"{path.name}: JSONDecodeError: {exc}"
    except yaml.YAMLError as exc:
        return default, f"{path.name}: YAMLError: {exc}"
    except UnicodeDecodeError as exc:
        return default, f"{path.name}: UnicodeDecodeError: {exc}"


def _append_event(events_path: Path, event: dict[str, Any]) -> None:
    events_path.parent.mkdir(parents=True, exist_ok=True)
    payload = dict(event)
    payload.setdefault("timestamp", _now_iso())
    line = json.dumps(payload, default=str) + "\n"
    with open(events_path, "a", encoding="utf-8") as handle:
        handle.write(line)
        handle.flush()
        os.fsync(handle.fileno())


def _read_jsonl_tail(path: Path, limit: int) -> list[dict[str, Any]]:
    """Return up to *limit* trailing JSON objects from a JSON Lines file."""
    if limit < 1 or not path.exists():
        return []
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []
    events: list[dict[str, Any]] = []
    for line in lines[-limit:]:
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            events.append(payload)
    return events
