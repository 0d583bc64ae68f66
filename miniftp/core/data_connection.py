import socket
import random
import logging
from typing import Callable, Optional, Tuple

from miniftp.core.errors import ProtocolError, ProtocolErrorKind
from miniftp.core.parser import Reply, format_port_argument, parse_pasv_reply
from miniftp.core.session import Session

logger = logging.getLogger(__name__)

FIRST_DATA_PORT = 1025
LAST_DATA_PORT = 65535


def next_data_port(current: Optional[int], rng=random) -> int:
    """
    Puerto local para la siguiente transferencia en modo activo.
    La primera vez es aleatorio en [1025, 65535); después se incrementa en 1
    porque los servidores pueden rechazar un puerto reutilizado.
    """
    if current is None:
        return rng.randrange(FIRST_DATA_PORT, LAST_DATA_PORT)
    port = current + 1
    if port > LAST_DATA_PORT:
        port = FIRST_DATA_PORT
    return port


class DataConnectionManager:
    def __init__(self, ip: str, port: int, timeout: Optional[float] = None,
                 bind_address: Optional[Tuple[str, int]] = None,
                 data_socket: Optional[socket.socket] = None):
        """
        Maneja una conexión de datos del cliente FTP (una por transferencia).
        `bind_address` fija la dirección local de origen (modo activo).
        """
        self.ip = ip
        self.port = port
        self.timeout = timeout
        self.bind_address = bind_address
        self.data_socket: Optional[socket.socket] = data_socket

    def connect(self):
        """
        Establece la conexión TCP con el servidor en el canal de datos.
        """
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            if self.bind_address is not None:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                sock.bind(self.bind_address)
            sock.settimeout(self.timeout)
            sock.connect((self.ip, self.port))
        except OSError as e:
            sock.close()
            logger.error(f"[DATA] ✗ Failed to connect to {self.ip}:{self.port} - {e}")
            raise ProtocolError(ProtocolErrorKind.DATA_CONNECT_FAILURE,
                                f"{self.ip}:{self.port}: {e}") from e
        self.data_socket = sock
        logger.info(f"[DATA] Connected to {self.ip}:{self.port}")

    def close(self):
        """
        Cierra la conexión de datos.
        """
        if self.data_socket:
            self.data_socket.close()
            self.data_socket = None
            logger.info(f"[DATA] Disconnected from {self.ip}:{self.port}")

    @property
    def closed(self) -> bool:
        return self.data_socket is None

    def recv(self, size: int) -> bytes:
        return self.data_socket.recv(size)

    def sendall(self, data: bytes):
        self.data_socket.sendall(data)

    def finish_write(self):
        """Cierra el lado de escritura: el servidor ve fin de datos."""
        try:
            self.data_socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass


class DataChannelNegotiator:
    """
    Abre la conexión de datos según el modo de la sesión.

    Modo pasivo: PASV y conexión a la dirección anunciada por el servidor.
    Modo activo: PORT con la dirección local y, en lugar de escuchar, el
    cliente sale desde ese puerto hacia el puerto de datos del servidor
    (por defecto el de control menos uno).
    """

    def __init__(self, timeout: Optional[float] = None, active_data_port: Optional[int] = None,
                 display: Optional[Callable[[str], None]] = None):
        self.timeout = timeout
        self.active_data_port = active_data_port
        self.display = display

    def open(self, session: Session, host: str, port: Optional[int] = None) -> DataConnectionManager:
        """
        Devuelve una conexión de datos ya conectada. En modo activo `port` es
        el puerto local elegido por el llamador con next_data_port().
        """
        if session.passive:
            return self._open_passive(session)
        if port is None:
            raise ValueError("Active mode requires a local data port.")
        return self._open_active(session, host, port)

    def _check(self, reply: Reply, verb: str):
        if reply.is_error or reply.is_preliminary:
            logger.warning(f"{verb} rejected: {reply.code}")
            raise ProtocolError(ProtocolErrorKind.COMMAND_REJECTED, f"{verb} refused: {reply}")

    def _open_passive(self, session: Session) -> DataConnectionManager:
        reply = session.send(self.display, "PASV")
        self._check(reply, "PASV")
        endpoint = parse_pasv_reply(reply)
        data_conn = DataConnectionManager(endpoint.host, endpoint.port, timeout=self.timeout)
        data_conn.connect()
        return data_conn

    def _open_active(self, session: Session, host: str, port: int) -> DataConnectionManager:
        local_ip = session.control.local_address
        reply = session.send(self.display, "PORT", format_port_argument(local_ip, port))
        self._check(reply, "PORT")
        server_port = self.active_data_port
        if server_port is None:
            server_port = session.control.port - 1
        data_conn = DataConnectionManager(host, server_port, timeout=self.timeout,
                                          bind_address=(local_ip, port))
        data_conn.connect()
        return data_conn
