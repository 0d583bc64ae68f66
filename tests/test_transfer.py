import socket

import pytest

from conftest import tcp_pair
from miniftp.core.data_connection import DataConnectionManager
from miniftp.core.errors import TransferIOError
from miniftp.core.transfer import Direction, Transfer, download, receive_listing, upload


@pytest.fixture
def data_pair():
    client_sock, server_sock = tcp_pair()
    client_sock.settimeout(5)
    server_sock.settimeout(5)
    data_conn = DataConnectionManager("127.0.0.1", 0, data_socket=client_sock)
    yield data_conn, server_sock
    data_conn.close()
    server_sock.close()


def test_download_stops_at_expected_size(data_pair, tmp_path):
    data_conn, peer = data_pair
    peer.sendall(b"hello")
    # el servidor no cierra: la descarga no debe esperar más datos
    target = tmp_path / "out.bin"
    assert download(data_conn, 5, str(target)) == 5
    assert target.read_bytes() == b"hello"


def test_download_never_reads_past_expected_size(data_pair, tmp_path):
    data_conn, peer = data_pair
    peer.sendall(b"helloworld")
    target = tmp_path / "out.bin"
    assert download(data_conn, 5, str(target)) == 5
    assert target.read_bytes() == b"hello"


def test_download_until_close_without_size(data_pair, tmp_path):
    data_conn, peer = data_pair
    payload = bytes(range(256)) * 100
    peer.sendall(payload)
    peer.shutdown(socket.SHUT_WR)
    target = tmp_path / "out.bin"
    assert download(data_conn, None, str(target)) == len(payload)
    assert target.read_bytes() == payload


def test_download_short_stream_returns_actual_count(data_pair, tmp_path):
    data_conn, peer = data_pair
    peer.sendall(b"abc")
    peer.shutdown(socket.SHUT_WR)
    assert download(data_conn, 10, str(tmp_path / "out.bin")) == 3


def test_download_truncates_existing_file(data_pair, tmp_path):
    data_conn, peer = data_pair
    target = tmp_path / "out.bin"
    target.write_bytes(b"old contents that are longer")
    peer.sendall(b"new")
    peer.shutdown(socket.SHUT_WR)
    download(data_conn, None, str(target))
    assert target.read_bytes() == b"new"


def test_download_local_write_failure_closes_data_connection(data_pair, tmp_path):
    data_conn, peer = data_pair
    with pytest.raises(TransferIOError) as exc:
        download(data_conn, None, str(tmp_path / "missing" / "out.bin"))
    assert exc.value.kind == TransferIOError.LOCAL_WRITE_FAILURE
    assert data_conn.closed


def test_upload_sends_file_then_closes(data_pair, tmp_path):
    data_conn, peer = data_pair
    source = tmp_path / "in.bin"
    source.write_bytes(b"x" * 10000)
    assert upload(data_conn, str(source)) == 10000
    assert data_conn.closed

    received = b""
    while True:
        chunk = peer.recv(4096)
        if not chunk:
            break
        received += chunk
    assert received == b"x" * 10000


def test_upload_missing_file(data_pair, tmp_path):
    data_conn, _ = data_pair
    with pytest.raises(TransferIOError) as exc:
        upload(data_conn, str(tmp_path / "nope.txt"))
    assert exc.value.kind == TransferIOError.LOCAL_READ_FAILURE
    assert data_conn.closed


def test_receive_listing(data_pair):
    data_conn, peer = data_pair
    peer.sendall(b"-rw-r--r-- 1 ftp ftp 5 Jan 01 00:00 a.txt\r\n")
    peer.close()
    assert receive_listing(data_conn) == "-rw-r--r-- 1 ftp ftp 5 Jan 01 00:00 a.txt\r\n"


def test_transfer_record():
    t = Transfer(Direction.DOWNLOAD, expected_size=5)
    assert t.remaining == 5 and not t.complete
    t.bytes_moved = 5
    assert t.remaining == 0 and t.complete
    assert Transfer(Direction.UPLOAD).remaining is None
