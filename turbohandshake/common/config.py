import os
from dataclasses import dataclass

ENV_PREFIX = "TURBOHANDSHAKE_"

DEFAULT_STREAM_CONNECT_TIMEOUT = 30.0
DEFAULT_HANDSHAKE_IO_TIMEOUT = 30.0
DEFAULT_TRACKER_TIMEOUT = 10.0
DEFAULT_LISTEN_PORT = 6881


@dataclass(frozen=True, slots=True)
class ClientConfig:
    """Network settings shared read-only by every peer task of a run."""

    stream_connect_timeout: float = DEFAULT_STREAM_CONNECT_TIMEOUT
    handshake_io_timeout: float = DEFAULT_HANDSHAKE_IO_TIMEOUT
    tracker_timeout: float = DEFAULT_TRACKER_TIMEOUT
    listen_port: int = DEFAULT_LISTEN_PORT

    def __post_init__(self):
        for name in ("stream_connect_timeout", "handshake_io_timeout", "tracker_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if not 0 < self.listen_port < 65536:
            raise ValueError(f"listen_port out of range: {self.listen_port}")

    @classmethod
    def from_env(cls, environ=None) -> "ClientConfig":
        environ = os.environ if environ is None else environ
        overrides = {}
        for field, env_name, cast in (
            ("stream_connect_timeout", "CONNECT_TIMEOUT", float),
            ("handshake_io_timeout", "HANDSHAKE_TIMEOUT", float),
            ("tracker_timeout", "TRACKER_TIMEOUT", float),
            ("listen_port", "PORT", int),
        ):
            raw = environ.get(ENV_PREFIX + env_name)
            if raw:
                overrides[field] = cast(raw)
        return cls(**overrides)


DEFAULT_CONFIG = ClientConfig()
