import os
import logging
from typing import Mapping, Optional

from miniftp.core.connection import DEFAULT_PORT

logger = logging.getLogger(__name__)


def _env_flag(environ: Mapping[str, str], name: str) -> bool:
    return environ.get(name, '0').lower() in ('1', 'true', 'yes')


def _env_number(environ: Mapping[str, str], name: str, cast):
    value = environ.get(name)
    if value is None or value == "":
        return None
    try:
        return cast(value)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={value!r}")
        return None


class ClientConfig:
    """Opciones del cliente: variables de entorno, sobrescritas por la línea de órdenes."""

    def __init__(self, host: Optional[str] = None, port: int = DEFAULT_PORT,
                 timeout: Optional[float] = None, passive: bool = False, debug: bool = False,
                 active_data_port: Optional[int] = None, log_level: str = "WARNING"):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.passive = passive
        self.debug = debug
        self.active_data_port = active_data_port
        self.log_level = log_level

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = None) -> "ClientConfig":
        if environ is None:
            environ = os.environ
        port = _env_number(environ, 'MINIFTP_PORT', int)
        return cls(
            port=port if port is not None else DEFAULT_PORT,
            timeout=_env_number(environ, 'MINIFTP_TIMEOUT', float),
            passive=_env_flag(environ, 'MINIFTP_PASSIVE'),
            debug=_env_flag(environ, 'MINIFTP_DEBUG'),
            active_data_port=_env_number(environ, 'MINIFTP_ACTIVE_DATA_PORT', int),
            log_level=environ.get('MINIFTP_LOG_LEVEL', 'WARNING').upper(),
        )

    def apply_args(self, args) -> "ClientConfig":
        """Aplica las opciones de argparse que se hayan indicado."""
        if getattr(args, 'host', None):
            self.host = args.host
        if getattr(args, 'port', None) is not None:
            self.port = args.port
        if getattr(args, 'timeout', None) is not None:
            self.timeout = args.timeout
        if getattr(args, 'passive', False):
            self.passive = True
        if getattr(args, 'debug', False):
            self.debug = True
        if getattr(args, 'log_level', None):
            self.log_level = args.log_level.upper()
        return self

    def __repr__(self):
        return (f"ClientConfig(host={self.host!r}, port={self.port}, timeout={self.timeout}, "
                f"passive={self.passive}, debug={self.debug}, active_data_port={self.active_data_port})")
