import os
import time
import getpass
import logging
import posixpath
from datetime import datetime
from typing import Callable, Optional

from miniftp.core.connection import mask_command
from miniftp.core.data_connection import DataChannelNegotiator, DataConnectionManager, next_data_port
from miniftp.core.errors import ProtocolError, ProtocolErrorKind, TransferIOError, UsageError
from miniftp.core.parser import Reply, parse_transfer_size
from miniftp.core.session import Session, TransferMode, TransferType
from miniftp.core import transfer
from miniftp.ui.levenstein import get_suggestion

logger = logging.getLogger(__name__)

HELP_MESSAGE = [
    "ascii      --> Set ASCII transfer type",
    "binary     --> Set binary transfer type",
    "cd <path>  --> Change the remote working directory",
    "cdup       --> Change the remote working directory to the",
    "               parent directory (i.e., cd ..)",
    "debug      --> Toggle debug mode",
    "dir        --> List the contents of the remote directory",
    "get path   --> Get a remote file",
    "help       --> Displays this text",
    "passive    --> Toggle passive/active mode",
    "put path   --> Transfer the specified file to the server",
    "pwd        --> Print the working directory on the server",
    "quit       --> Close the connection to the server and terminate",
    "user login --> Specify the user name (will prompt for password)",
]

ERROR_MESSAGES = {
    ProtocolErrorKind.MALFORMED_REPLY: "Malformed reply from server",
    ProtocolErrorKind.PASV_PARSE_FAILURE: "Could not parse passive mode reply",
    ProtocolErrorKind.DATA_CONNECT_FAILURE: "Can't open data connection",
    ProtocolErrorKind.COMMAND_REJECTED: "Data connection setup refused by server",
    ProtocolErrorKind.CONNECTION_LOST: "Connection to server lost",
}


class ClientCommandHandler:
    def __init__(self, session: Session, display: Callable[[str], None] = print,
                 negotiator: Optional[DataChannelNegotiator] = None,
                 prompt_password: Callable[[str], str] = getpass.getpass,
                 download_dir: Optional[str] = None):
        self.session = session
        self.conn = session.control
        self.display = display
        self.negotiator = negotiator or DataChannelNegotiator(timeout=self.conn.timeout, display=display)
        self.prompt_password = prompt_password
        self.download_dir = download_dir
        # history as list of dicts: {"time":..., "command":..., "reply":..., "error":bool}
        self.history = []

        # verbo -> (handler, número exacto de argumentos o None, uso)
        self._handlers = {
            "ascii": (self._ascii, None, None),
            "binary": (self._binary, None, None),
            "cd": (self._cd, 1, "Usage: cd <path>"),
            "cdup": (self._cdup, None, None),
            "debug": (self._debug, None, None),
            "dir": (self._dir, None, None),
            "get": (self._get, 1, "Usage: get <path>"),
            "help": (self._help, None, None),
            "passive": (self._passive, None, None),
            "put": (self._put, 1, "Usage: put <path>"),
            "pwd": (self._pwd, None, None),
            "quit": (self._quit, None, None),
            "user": (self._user, 1, "Usage: user <username>"),
        }

    @property
    def commands(self):
        return sorted(self._handlers)

    def execute(self, line: str) -> bool:
        """
        Ejecuta una línea del operador. Devuelve False cuando la sesión terminó.
        """
        if self.session.closed:
            return False
        parts = line.split()
        if not parts:
            return True

        verb = parts[0].lower()
        args = parts[1:]
        entry = self._handlers.get(verb)
        if entry is None:
            self.display("Invalid command.")
            suggestion = get_suggestion(verb, self.commands)
            if suggestion:
                self.display(f"Did you mean '{suggestion}'?")
            return True

        handler, arg_count, usage = entry
        try:
            if arg_count is not None and len(args) != arg_count:
                raise UsageError(usage)
            handler(*(args if arg_count is not None else []))
        except UsageError as e:
            self.display(e.usage)
        except TransferIOError as e:
            logger.warning(f"Local file error during '{verb}': {e}")
            self.display(f"local: {e.path}: {e.reason}" if e.reason else f"local: {e.path}")
        except ProtocolError as e:
            logger.warning(f"Protocol error during '{verb}': {e}")
            message = ERROR_MESSAGES.get(e.kind, e.kind)
            self.display(f"{message}: {e.message}" if e.message else message)
            if e.is_fatal:
                self._end_session()
        return not self.session.closed

    # Intercambios con el canal de control
    def _record(self, command: str, reply: Optional[Reply]):
        self.history.append({
            "time": datetime.now(),
            "command": mask_command(command),
            "reply": reply,
            "error": reply is None or reply.is_error
        })

    def _execute(self, verb: str, arg: Optional[str] = None, echo: bool = True) -> Reply:
        reply = self.session.send(self.display, verb, arg, echo=echo)
        self._record(verb if arg is None else f"{verb} {arg}", reply)
        return reply

    def _start(self, verb: str, arg: Optional[str] = None) -> Reply:
        """Envía una orden de transferencia y lee su primera respuesta (1xx o error)."""
        self.session.trace(self.display, verb, arg)
        self.conn.send_command(verb, arg)
        reply = self.conn.receive_response()
        self._record(verb if arg is None else f"{verb} {arg}", reply)
        return reply

    def _finish(self, command: str) -> Reply:
        """Lee la respuesta final que sigue al cierre de la conexión de datos."""
        reply = self.conn.receive_response()
        self._record(command, reply)
        return reply

    def _open_data_connection(self) -> DataConnectionManager:
        port = None
        if self.session.mode is TransferMode.ACTIVE:
            port = next_data_port(self.session.current_data_port)
            self.session.current_data_port = port
        return self.negotiator.open(self.session, self.session.host, port)

    def _end_session(self):
        self.session.closed = True
        self.conn.disconnect()

    def abort(self):
        """Cierra la sesión sin QUIT; el canal de control puede estar a medias."""
        logger.warning(f"Aborting session with {self.session.host}")
        self._end_session()

    # Login
    def login(self, username: Optional[str] = None, password: Optional[str] = None,
              prompt: Callable[[str], str] = input) -> Reply:
        """
        Secuencia inicial tras el saludo: USER/PASS, SYST y TYPE I.
        """
        if username is None:
            try:
                local_user = getpass.getuser()
            except (KeyError, OSError):
                local_user = "anonymous"
            username = prompt(f"Name ({self.session.host}:{local_user}): ").strip() or local_user
        reply = self._user(username, password)

        syst = self._execute("SYST", echo=False)
        if syst.is_success and syst.message.split():
            self.display(f"Remote system type is {syst.message.split()[0]}.")

        type_reply = self._execute("TYPE", TransferType.BINARY.value, echo=False)
        if type_reply.is_success:
            self.session.transfer_type = TransferType.BINARY
            self.display("Using binary mode to transfer files.")
        return reply

    # Comandos sin conexión de datos
    def _user(self, username: str, password: Optional[str] = None) -> Reply:
        reply = self._execute("USER", username)
        if reply.code == 331:
            if password is None:
                try:
                    password = self.prompt_password("Password: ")
                except EOFError:
                    password = ""
            reply = self._execute("PASS", password.strip())
        return reply

    def _set_type(self, transfer_type: TransferType) -> Reply:
        reply = self._execute("TYPE", transfer_type.value)
        if reply.is_success:
            self.session.transfer_type = transfer_type
        return reply

    def _ascii(self):
        return self._set_type(TransferType.ASCII)

    def _binary(self):
        return self._set_type(TransferType.BINARY)

    def _cd(self, path: str):
        return self._execute("CWD", path)

    def _cdup(self):
        return self._execute("CDUP")

    def _pwd(self):
        return self._execute("PWD")

    def _quit(self):
        try:
            return self._execute("QUIT")
        finally:
            self._end_session()

    def _debug(self):
        self.session.debug = not self.session.debug
        if self.session.debug:
            self.display("Debugging on (debug=1).")
        else:
            self.display("Debugging off (debug=0).")

    def _passive(self):
        if self.session.mode is TransferMode.PASSIVE:
            self.session.mode = TransferMode.ACTIVE
            self.display("Passive mode off.")
        else:
            self.session.mode = TransferMode.PASSIVE
            self.display("Passive mode on.")

    def _help(self):
        for line in HELP_MESSAGE:
            self.display(line)

    # Comandos con conexión de datos
    def _transfer(self, command: str, data_conn: DataConnectionManager, move: Callable[[Reply], object]):
        """
        Ejecuta el patrón común: orden, 1xx, mover datos, cerrar, respuesta final.
        Devuelve (resultado de `move`, respuesta final) o (None, respuesta de error).
        """
        verb, _, arg = command.partition(" ")
        try:
            reply = self._start(verb, arg or None)
            if not reply.is_preliminary:
                return None, reply
            try:
                result = move(reply)
            except (TransferIOError, ProtocolError) as e:
                if isinstance(e, ProtocolError) and e.is_fatal:
                    raise
                # El servidor responde igualmente al cerrar la conexión de datos
                data_conn.close()
                self._finish(command)
                raise
        finally:
            data_conn.close()
        return result, self._finish(command)

    def _show_listing(self, listing: str) -> str:
        if listing:
            self.display(listing.replace('\r\n', '\n').rstrip('\n'))
        return listing

    def _dir(self):
        data_conn = self._open_data_connection()
        listing, _ = self._transfer("LIST", data_conn,
                                    lambda reply: self._show_listing(transfer.receive_listing(data_conn)))
        return listing

    def _get(self, path: str):
        name = posixpath.basename(path.rstrip('/')) or path
        destination = os.path.join(self.download_dir, name) if self.download_dir else name
        data_conn = self._open_data_connection()
        started = time.monotonic()
        count, _ = self._transfer(
            f"RETR {path}", data_conn,
            lambda reply: transfer.download(data_conn, parse_transfer_size(reply), destination))
        if count is not None:
            elapsed = time.monotonic() - started
            self.display(f"{count} bytes received in {elapsed:.2f} secs.")
        return count

    def _put(self, path: str):
        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            raise TransferIOError(TransferIOError.LOCAL_READ_FAILURE, path, "No such file or not readable")
        data_conn = self._open_data_connection()
        started = time.monotonic()
        count, _ = self._transfer(f"APPE {path}", data_conn,
                                      lambda reply: transfer.upload(data_conn, path))
        if count is not None:
            elapsed = time.monotonic() - started
            self.display(f"{count} bytes sent in {elapsed:.2f} secs.")
        return count

    # Helpers for UI
    def get_history(self):
        """Return a copy of the history list."""
        return list(self.history)

    def clear_history(self):
        self.history.clear()
