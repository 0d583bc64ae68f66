import socket
import struct
import threading

import pytest

from miniftp.core.commands import ClientCommandHandler
from miniftp.core.connection import ControlConnectionManager
from miniftp.core.data_connection import DataChannelNegotiator
from miniftp.core.session import Session


def tcp_pair():
    """Par de sockets TCP conectados por loopback (cliente, servidor)."""
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(1)
    client = socket.create_connection(listener.getsockname())
    server, _ = listener.accept()
    listener.close()
    return client, server


def closed_port():
    """Puerto de loopback en el que nadie escucha."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class FakeServer:
    """Extremo servidor del canal de control con respuestas preparadas."""

    def __init__(self, sock: socket.socket):
        self.sock = sock

    def reply(self, *lines):
        self.sock.sendall("".join(line + "\r\n" for line in lines).encode("utf-8"))

    def sent(self, wait: float = 0.2) -> bytes:
        """Todo lo que el cliente ha escrito hasta ahora."""
        self.sock.settimeout(wait)
        chunks = []
        try:
            while True:
                data = self.sock.recv(4096)
                if not data:
                    break
                chunks.append(data)
        except socket.timeout:
            pass
        return b"".join(chunks)

    def close(self):
        self.sock.close()


class DataServer(threading.Thread):
    """Acepta conexiones de datos; envía `payloads` y guarda lo recibido."""

    def __init__(self, payloads=(b"",), hold=False, reset=False):
        super().__init__(daemon=True)
        self.listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.listener.bind(("127.0.0.1", 0))
        self.listener.listen(2)
        self.listener.settimeout(5)
        self.port = self.listener.getsockname()[1]
        self.payloads = list(payloads)
        self.hold = hold
        self.reset = reset
        self.received = []
        self.peers = []

    @property
    def pasv_reply(self) -> str:
        return f"227 Entering Passive Mode (127,0,0,1,{self.port // 256},{self.port % 256})."

    def run(self):
        try:
            for payload in self.payloads:
                conn, peer = self.listener.accept()
                self.peers.append(peer)
                if self.reset:
                    # cierre abortivo: el cliente recibe RST
                    conn.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack("ii", 1, 0))
                    conn.close()
                    self.received.append(b"")
                    continue
                with conn:
                    conn.settimeout(5)
                    if payload:
                        conn.sendall(payload)
                    chunks = []
                    if self.hold or not payload:
                        while True:
                            data = conn.recv(4096)
                            if not data:
                                break
                            chunks.append(data)
                    self.received.append(b"".join(chunks))
        except OSError:
            pass
        finally:
            self.listener.close()


@pytest.fixture
def lines():
    return []


@pytest.fixture
def control(lines):
    client_sock, server_sock = tcp_pair()
    conn = ControlConnectionManager("127.0.0.1", 21, timeout=5, display=lines.append)
    conn.attach(client_sock)
    server = FakeServer(server_sock)
    yield conn, server
    conn.disconnect()
    server.close()


@pytest.fixture
def session(control):
    conn, _ = control
    return Session(conn)


@pytest.fixture
def server(control):
    return control[1]


@pytest.fixture
def handler(session, lines, tmp_path):
    negotiator = DataChannelNegotiator(timeout=5, display=lines.append)
    return ClientCommandHandler(session, display=lines.append, negotiator=negotiator,
                                prompt_password=lambda prompt: "secret",
                                download_dir=str(tmp_path))
