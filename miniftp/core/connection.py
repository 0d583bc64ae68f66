import socket
import logging
from typing import Callable, Optional

from miniftp.core.errors import ProtocolError, ProtocolErrorKind
from miniftp.core.parser import Reply, ReplyParser

logger = logging.getLogger(__name__)

DEFAULT_PORT = 21


def mask_command(line: str) -> str:
    """Oculta la contraseña para logs y modo debug."""
    if line.upper().startswith("PASS "):
        return "PASS XXXX"
    return line


class ControlConnectionManager:
    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: Optional[float] = None,
                 display: Optional[Callable[[str], None]] = None):
        self.host = host
        self.port = port
        self.timeout = timeout
        self.socket: Optional[socket.socket] = None
        self.reader = None
        self.parser = ReplyParser(display)
        # Una sola orden en vuelo: no se envía otra hasta leer su respuesta
        self._awaiting_reply = False

    def connect(self):
        if self.socket is not None:
            raise RuntimeError("Connection already established.")
        sock = None
        try:
            logger.info(f"Connecting to {self.host}:{self.port} (timeout={self.timeout}s)")
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
            sock.settimeout(self.timeout)
            sock.connect((self.host, self.port))
        except OSError as e:
            logger.error(f"✗ Failed to connect to {self.host}:{self.port} - {e}")
            if sock is not None:
                sock.close()
            raise ConnectionError(f"{self.host}: Name or service not known") from e
        logger.info(f"✓ Connected to {self.host}:{self.port}")
        self.attach(sock)

    def attach(self, sock: socket.socket):
        """Adopta un socket ya conectado como conexión de control."""
        self.socket = sock
        self.reader = sock.makefile('rb')
        self._awaiting_reply = False

    @property
    def connected(self) -> bool:
        return self.socket is not None

    @property
    def local_address(self) -> str:
        """IPv4 local tal como la ve el servidor en la conexión de control."""
        if self.socket is None:
            raise RuntimeError("No connection established.")
        return self.socket.getsockname()[0]

    def disconnect(self):
        if self.socket:
            try:
                logger.info(f"Closing connection to {self.host}:{self.port}")
                self.socket.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            self._close()
            logger.info(f"✓ Disconnected from {self.host}:{self.port}")

    def _close(self):
        if self.reader is not None:
            try:
                self.reader.close()
            except OSError:
                pass
        if self.socket is not None:
            self.socket.close()
        self.reader = None
        self.socket = None
        self._awaiting_reply = False

    def _lost(self, error: Exception):
        logger.error(f"✗ Control connection to {self.host}:{self.port} lost - {error}")
        self._close()
        raise ProtocolError(ProtocolErrorKind.CONNECTION_LOST, str(error) or "connection lost") from error

    def send_command(self, verb: str, arg: Optional[str] = None):
        if self.socket is None:
            raise RuntimeError("No connection established.")
        if self._awaiting_reply:
            raise RuntimeError("Previous command reply has not been read.")
        line = verb if arg is None else f"{verb} {arg}"
        logger.debug(f"→ SEND: {mask_command(line)}")
        try:
            self.socket.sendall((line + '\r\n').encode('utf-8'))
        except OSError as e:
            self._lost(e)
        self._awaiting_reply = True

    def receive_response(self, echo: bool = True) -> Reply:
        if self.socket is None:
            raise RuntimeError("No connection established.")
        try:
            reply = self.parser.read_reply(self.reader, echo=echo)
        except ProtocolError as e:
            if e.is_fatal:
                logger.error(f"✗ Control connection to {self.host}:{self.port} closed by server")
                self._close()
            self._awaiting_reply = False
            raise
        except OSError as e:
            self._lost(e)
        self._awaiting_reply = False
        return reply

    def send(self, verb: str, arg: Optional[str] = None, echo: bool = True) -> Reply:
        """Envía una orden y devuelve su respuesta completa."""
        self.send_command(verb, arg)
        return self.receive_response(echo=echo)

    def read_banner(self) -> Reply:
        return self.receive_response()
