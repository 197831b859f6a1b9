"""Server list for the command-line client, read from a TOML file."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from pathlib import Path

from srcrcon.errors import RconError
from srcrcon.session import DEFAULT_PORT

CONFIG_DIR = Path.home() / ".config" / "srcrcon"
CONFIG_FILE = CONFIG_DIR / "config.toml"
HISTORY_FILE = CONFIG_DIR / "history"

DEFAULT_TIMEOUT = 10.0


class ConfigError(RconError):
    """Raised when the config file cannot be parsed."""


@dataclass(frozen=True)
class ServerConfig:
    """Where one server listens, and optionally its RCON password."""

    name: str
    host: str
    port: int = DEFAULT_PORT
    password: str | None = None

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    @classmethod
    def from_address(cls, address: str) -> ServerConfig:
        """Build an unnamed entry from ``host`` or ``host:port``.

        A suffix that is not a port number is kept as part of the host.
        """
        host, sep, port = address.rpartition(":")
        if sep and port.isdigit():
            return cls(name=address, host=host, port=int(port))
        return cls(name=address, host=address)


@dataclass(frozen=True)
class AppConfig:
    servers: dict[str, ServerConfig] = field(default_factory=dict)
    default_server: str | None = None
    timeout: float = DEFAULT_TIMEOUT


def load_config(path: Path = CONFIG_FILE) -> AppConfig:
    """Load the config file, or a single local server if there is none.

    Raises ConfigError if the file is not valid TOML or an entry lacks a host.
    """
    if not path.exists():
        return AppConfig(
            servers={"local": ServerConfig(name="Local server", host="127.0.0.1")},
            default_server="local",
        )

    try:
        with path.open("rb") as f:
            raw = tomllib.load(f)
        return _parse(raw)
    except (tomllib.TOMLDecodeError, KeyError, TypeError, ValueError) as e:
        msg = f"Invalid config file {path}: {e!r}"
        raise ConfigError(msg) from e


def _parse(raw: dict) -> AppConfig:
    defaults = raw.get("defaults", {})
    servers = {
        key: ServerConfig(
            name=entry.get("name", key),
            host=entry["host"],
            port=int(entry.get("port", DEFAULT_PORT)),
            password=entry.get("password"),
        )
        for key, entry in raw.get("servers", {}).items()
    }
    return AppConfig(
        servers=servers,
        default_server=defaults.get("server"),
        timeout=float(defaults.get("timeout", DEFAULT_TIMEOUT)),
    )


def ensure_config_dir() -> None:
    """Create the config directory if it does not exist."""
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
