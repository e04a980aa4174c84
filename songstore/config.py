# ---------- CONFIG ---------- #

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import quote_plus

from .errors import ConfigError

DATABASE_NAME = "song-recognition"
FINGERPRINTS_COLLECTION = "fingerprints"
SONGS_COLLECTION = "songs"

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 27017

# ASCII unit separator: never appears in ordinary title text
KEY_SEPARATOR = "\x1f"

LOOKUP_BATCH_SIZE = 1000  # max ids per $in query
MAX_ID_ATTEMPTS = 8       # fresh song ids drawn before giving up

# Container header
HEADER_SIZE = 44
PCM_FORMAT = 1
SUPPORTED_BITS = 16

UINT32_MAX = 0xFFFFFFFF


@dataclass(frozen=True)
class StoreConfig:
    """
    Connection settings for the document store.

    Built explicitly and handed to ``DocumentStore``; nothing here is read at
    import time. ``from_env`` is the only place environment variables are
    consulted.
    """

    username: str = ""
    password: str = ""
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    auth_database: str = ""
    database: str = DATABASE_NAME

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    @property
    def uri(self) -> str:
        if not self.has_credentials:
            return f"mongodb://{self.host}:{self.port}"
        user = quote_plus(self.username)
        password = quote_plus(self.password)
        return f"mongodb://{user}:{password}@{self.host}:{self.port}/{self.auth_database}"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StoreConfig":
        """
        Build a config from DB_USER, DB_PASS, DB_NAME, DB_HOST and DB_PORT.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Returns:
            StoreConfig with unset variables falling back to the defaults
        """
        env = os.environ if environ is None else environ

        raw_port = env.get("DB_PORT") or str(DEFAULT_PORT)
        try:
            port = int(raw_port)
        except ValueError:
            raise ConfigError(f"DB_PORT must be an integer, got {raw_port!r}") from None
        if not 0 < port < 65536:
            raise ConfigError(f"DB_PORT out of range: {port}")

        return cls(
            username=env.get("DB_USER", ""),
            password=env.get("DB_PASS", ""),
            host=env.get("DB_HOST") or DEFAULT_HOST,
            port=port,
            auth_database=env.get("DB_NAME", ""),
        )

    def __repr__(self) -> str:
        # keep the password out of logs
        return (
            f"StoreConfig(username={self.username!r}, host={self.host!r}, "
            f"port={self.port}, database={self.database!r})"
        )
