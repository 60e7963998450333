"""
Settings store utilities.

Persists saved connections and the provider auth blob to
~/.agentdb/config.json so the CLI and the API server share them.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

CONFIG_DIR = Path.home() / ".agentdb"
CONFIG_PATH = CONFIG_DIR / "config.json"

CONNECTIONS_KEY = "connections"
AUTH_KEY = "auth"


def _ensure_dir() -> None:
    CONFIG_DIR.mkdir(exist_ok=True, mode=0o700)


def load_config() -> dict[str, Any]:
    if CONFIG_PATH.exists():
        with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
            return json.load(handle)
    return {}


def save_config(config: dict[str, Any]) -> None:
    _ensure_dir()
    with open(CONFIG_PATH, "w", encoding="utf-8") as handle:
        json.dump(config, handle, indent=2)
    CONFIG_PATH.chmod(0o600)


def set_value(key: str, value: Any) -> None:
    if value is None:
        return
    config = load_config()
    config[key] = value
    save_config(config)


def get_value(key: str) -> Any:
    return load_config().get(key)


# ----------------------------------------------------------------------------
# Connections
# ----------------------------------------------------------------------------


def get_connections() -> list[dict[str, Any]]:
    return list(load_config().get(CONNECTIONS_KEY, []))


def add_connection(name: str, url: str) -> dict[str, Any]:
    """
    Save a named connection.

    The first saved connection becomes the default. Saving an existing
    name replaces its URL and keeps its default flag.
    """
    config = load_config()
    connections = config.setdefault(CONNECTIONS_KEY, [])

    for entry in connections:
        if entry["name"] == name:
            entry["url"] = url
            save_config(config)
            return entry

    entry = {"name": name, "url": url, "is_default": not connections}
    connections.append(entry)
    save_config(config)
    return entry


def remove_connection(name: str) -> bool:
    config = load_config()
    connections = config.get(CONNECTIONS_KEY, [])
    remaining = [entry for entry in connections if entry["name"] != name]
    if len(remaining) == len(connections):
        return False
    if remaining and not any(entry.get("is_default") for entry in remaining):
        remaining[0]["is_default"] = True
    config[CONNECTIONS_KEY] = remaining
    save_config(config)
    return True


def set_default_connection(name: str) -> None:
    config = load_config()
    connections = config.get(CONNECTIONS_KEY, [])
    if not any(entry["name"] == name for entry in connections):
        raise KeyError(f"Unknown connection: {name}")
    for entry in connections:
        entry["is_default"] = entry["name"] == name
    save_config(config)


def get_default_connection() -> dict[str, Any] | None:
    """Return the default connection, or the only one saved, or None."""
    connections = get_connections()
    for entry in connections:
        if entry.get("is_default"):
            return entry
    if len(connections) == 1:
        return connections[0]
    return None


# ----------------------------------------------------------------------------
# Auth blob
# ----------------------------------------------------------------------------


def get_auth() -> dict[str, Any] | None:
    return load_config().get(AUTH_KEY)


def save_auth(auth: dict[str, Any]) -> None:
    config = load_config()
    config[AUTH_KEY] = auth
    save_config(config)


def clear_config() -> None:
    """Remove persisted config file."""
    CONFIG_PATH.unlink(missing_ok=True)
