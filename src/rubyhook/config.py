from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

LOOPBACK_HOST = "127.0.0.1"
DEFAULT_PORT = 17889
PORT_ENV = "TRANSLATOR_PORT"
DATA_DIR_ENV = "RUBYHOOK_DATA_DIR"
HISTORY_CAPACITY = 1000


def read_port_from_env() -> int:
    raw = os.environ.get(PORT_ENV)
    if not raw:
        return DEFAULT_PORT
    try:
        port = int(raw.strip())
    except ValueError:
        return DEFAULT_PORT
    if not 0 < port < 65536:
        return DEFAULT_PORT
    return port


def default_data_dir() -> Path:
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    xdg = os.environ.get("XDG_DATA_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".local" / "share"
    return base / "rubyhook"


@dataclass(slots=True)
class ServiceConfig:
    data_dir: Path = field(default_factory=default_data_dir)
    port: int = field(default_factory=read_port_from_env)
    host: str = LOOPBACK_HOST
    clipboard_watch: bool = False
    openai_compatible_input: bool = False
    eager_dictionary: bool = False
    history_capacity: int = HISTORY_CAPACITY

    @property
    def cache_dir(self) -> Path:
        return self.data_dir / "cache"

    @property
    def dictionary_dir(self) -> Path:
        return self.data_dir / "dictionary" / "unidic"
