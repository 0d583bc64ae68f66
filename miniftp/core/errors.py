"""
Errores del cliente FTP.

El fallo de conexión inicial usa el ``ConnectionError`` nativo de Python;
el resto de la taxonomía vive aquí.
"""


class ProtocolErrorKind:
    """Constantes para los distintos tipos de error de protocolo"""

    MALFORMED_REPLY = "MalformedReply"
    PASV_PARSE_FAILURE = "PasvParseFailure"
    DATA_CONNECT_FAILURE = "DataConnectFailure"
    COMMAND_REJECTED = "CommandRejected"
    CONNECTION_LOST = "ConnectionLost"


class ProtocolError(Exception):
    def __init__(self, kind: str, message: str = ""):
        self.kind = kind
        self.message = message
        super().__init__(f"{kind}: {message}" if message else kind)

    @property
    def is_fatal(self) -> bool:
        """Solo la pérdida de la conexión de control termina la sesión."""
        return self.kind == ProtocolErrorKind.CONNECTION_LOST


class TransferIOError(OSError):
    LOCAL_WRITE_FAILURE = "LocalWriteFailure"
    LOCAL_READ_FAILURE = "LocalReadFailure"

    def __init__(self, kind: str, path: str, reason: str = ""):
        self.kind = kind
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}" if reason else path)


class UsageError(Exception):
    """Número de argumentos incorrecto; no se envía nada al servidor."""

    def __init__(self, usage: str):
        self.usage = usage
        super().__init__(usage)
