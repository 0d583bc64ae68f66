"""
Transferencia de bytes entre una conexión de datos y el disco local.

El fin de una descarga lo marca el tamaño anunciado por el servidor (si lo
hay) o el cierre de la conexión de datos; FTP no usa prefijo de longitud.
"""

import logging
from enum import Enum
from typing import Optional

from miniftp.core.data_connection import DataConnectionManager
from miniftp.core.errors import ProtocolError, ProtocolErrorKind, TransferIOError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4096


class Direction(Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class Transfer:
    def __init__(self, direction: Direction, expected_size: Optional[int] = None):
        self.direction = direction
        self.expected_size = expected_size
        self.bytes_moved = 0

    @property
    def remaining(self) -> Optional[int]:
        if self.expected_size is None:
            return None
        return max(self.expected_size - self.bytes_moved, 0)

    @property
    def complete(self) -> bool:
        return self.expected_size is not None and self.bytes_moved >= self.expected_size

    def __repr__(self):
        return (f"Transfer(direction={self.direction.value}, expected_size={self.expected_size}, "
                f"bytes_moved={self.bytes_moved})")


def _data_lost(data_conn: DataConnectionManager, error: OSError):
    data_conn.close()
    logger.error(f"[DATA] Data connection lost - {error}")
    raise ProtocolError(ProtocolErrorKind.DATA_CONNECT_FAILURE, f"data connection lost: {error}") from error


def download(data_conn: DataConnectionManager, expected_size: Optional[int], destination_path: str) -> int:
    """
    Copia la conexión de datos a `destination_path` hasta recibir
    `expected_size` bytes o hasta el fin del stream. Devuelve los bytes movidos.
    """
    transfer = Transfer(Direction.DOWNLOAD, expected_size)
    try:
        f = open(destination_path, 'wb')
    except OSError as e:
        data_conn.close()
        logger.error(f"[DATA] Cannot create {destination_path}: {e}")
        raise TransferIOError(TransferIOError.LOCAL_WRITE_FAILURE, destination_path, e.strerror or str(e)) from e

    with f:
        while not transfer.complete:
            size = CHUNK_SIZE if transfer.remaining is None else min(CHUNK_SIZE, transfer.remaining)
            try:
                data = data_conn.recv(size)
            except OSError as e:
                _data_lost(data_conn, e)
            if not data:
                break
            try:
                f.write(data)
            except OSError as e:
                data_conn.close()
                logger.error(f"[DATA] Write to {destination_path} failed: {e}")
                raise TransferIOError(TransferIOError.LOCAL_WRITE_FAILURE, destination_path,
                                      e.strerror or str(e)) from e
            transfer.bytes_moved += len(data)

    logger.info(f"[DATA] File downloaded to {destination_path}: {transfer}")
    return transfer.bytes_moved


def upload(data_conn: DataConnectionManager, source_path: str) -> int:
    """
    Envía el archivo completo y cierra la conexión de datos para marcar el final.
    """
    transfer = Transfer(Direction.UPLOAD)
    try:
        f = open(source_path, 'rb')
    except OSError as e:
        data_conn.close()
        logger.error(f"[DATA] Cannot open {source_path}: {e}")
        raise TransferIOError(TransferIOError.LOCAL_READ_FAILURE, source_path, e.strerror or str(e)) from e

    with f:
        while True:
            try:
                chunk = f.read(CHUNK_SIZE)
            except OSError as e:
                data_conn.close()
                raise TransferIOError(TransferIOError.LOCAL_READ_FAILURE, source_path,
                                      e.strerror or str(e)) from e
            if not chunk:
                break
            try:
                data_conn.sendall(chunk)
            except OSError as e:
                _data_lost(data_conn, e)
            transfer.bytes_moved += len(chunk)

    data_conn.finish_write()
    data_conn.close()
    logger.info(f"[DATA] File uploaded from {source_path}: {transfer}")
    return transfer.bytes_moved


def receive_listing(data_conn: DataConnectionManager) -> str:
    """
    Recibe el listado del directorio hasta que el servidor cierra la conexión.
    """
    buffer = []
    while True:
        try:
            data = data_conn.recv(CHUNK_SIZE)
        except OSError as e:
            _data_lost(data_conn, e)
        if not data:
            break
        buffer.append(data)
    return b''.join(buffer).decode('utf-8', errors='replace')
