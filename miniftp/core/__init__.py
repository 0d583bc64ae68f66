"""
Core FTP Client logic.
Includes reply parser, connection managers, transfer engine and command handler.
"""

from .errors import ProtocolError, ProtocolErrorKind, TransferIOError, UsageError
from .parser import Endpoint, Reply, ReplyParser, format_port_argument, parse_pasv_reply, parse_transfer_size
from .connection import ControlConnectionManager
from .session import Session, TransferMode, TransferType
from .data_connection import DataChannelNegotiator, DataConnectionManager, next_data_port
from .transfer import Direction, Transfer, download, receive_listing, upload
from .commands import ClientCommandHandler
from .config import ClientConfig

__all__ = [
    "ProtocolError",
    "ProtocolErrorKind",
    "TransferIOError",
    "UsageError",
    "Endpoint",
    "Reply",
    "ReplyParser",
    "format_port_argument",
    "parse_pasv_reply",
    "parse_transfer_size",
    "ControlConnectionManager",
    "Session",
    "TransferMode",
    "TransferType",
    "DataChannelNegotiator",
    "DataConnectionManager",
    "next_data_port",
    "Direction",
    "Transfer",
    "download",
    "receive_listing",
    "upload",
    "ClientCommandHandler",
    "ClientConfig"
]
