import re
import logging
from typing import Callable, List, NamedTuple, Optional

from miniftp.core.errors import ProtocolError, ProtocolErrorKind

logger = logging.getLogger(__name__)

# Código de 3 dígitos seguido de '-', de ' ' o de fin de línea
_REPLY_LINE = re.compile(r"^(\d{3})([- ]|$)")
_PASV_TUPLE = re.compile(r"(\d+),(\d+),(\d+),(\d+),(\d+),(\d+)")
_TRANSFER_SIZE = re.compile(r"\((\d+) bytes\)", re.IGNORECASE)

RESPONSE_TYPES = {
    '1': 'preliminary',
    '2': 'success',
    '3': 'missing_info',
    '4': 'error',
    '5': 'error'
}


class Endpoint(NamedTuple):
    host: str
    port: int

    def __str__(self):
        return f"{self.host}:{self.port}"


class Reply:
    """Una respuesta lógica del canal de control (una o varias líneas)."""

    def __init__(self, code: int, lines: List[str], is_final: bool = True):
        self.code = code
        self.lines = lines
        self.is_final = is_final

    @property
    def message(self) -> str:
        """Texto de todas las líneas sin el prefijo numérico."""
        prefix = str(self.code)
        text = []
        for line in self.lines:
            if line.startswith(prefix) and len(line) > 3 and line[3] in "- ":
                text.append(line[4:])
            elif line.startswith(prefix) and len(line) == 3:
                text.append("")
            else:
                text.append(line)
        return "\n".join(text)

    @property
    def type(self) -> str:
        return RESPONSE_TYPES.get(str(self.code)[0], 'unknown')

    @property
    def is_preliminary(self) -> bool:
        return 100 <= self.code < 200

    @property
    def is_success(self) -> bool:
        return 200 <= self.code < 300

    @property
    def is_error(self) -> bool:
        return self.code >= 400

    def __str__(self):
        return "\n".join(self.lines)

    def __repr__(self):
        return f"Reply(code={self.code}, lines={self.lines!r})"


class ReplyParser:
    def __init__(self, display: Optional[Callable[[str], None]] = None):
        self.display = display

    @staticmethod
    def parse_line(line: str):
        """
        Devuelve (código, es_continuación) para una línea de respuesta.
        Lanza ProtocolError(MALFORMED_REPLY) si la línea no empieza con un código.
        """
        match = _REPLY_LINE.match(line)
        if not match:
            logger.error(f"Invalid FTP reply line: {line!r}")
            raise ProtocolError(ProtocolErrorKind.MALFORMED_REPLY, f"cannot parse reply line {line!r}")
        return int(match.group(1)), match.group(2) == '-'

    def read_reply(self, source, echo: bool = True) -> Reply:
        """
        Lee líneas de `source` (cualquier objeto con readline()) hasta la línea
        final de la respuesta y devuelve una única Reply.
        """
        lines = []
        code = None
        bad_line = None
        while True:
            raw = source.readline()
            if not raw:
                raise ProtocolError(ProtocolErrorKind.CONNECTION_LOST, "connection closed by server")
            if isinstance(raw, bytes):
                raw = raw.decode('utf-8', errors='replace')
            line = raw.rstrip('\r\n')
            if echo and self.display is not None:
                self.display(line)
            logger.debug(f"← RECV: {line}")

            try:
                line_code, continuation = self.parse_line(line)
            except ProtocolError:
                if code is None:
                    raise
                # Dentro de una respuesta multilínea: se consume hasta la línea final
                if bad_line is None:
                    bad_line = line
                lines.append(line)
                continue
            if code is None:
                code = line_code
            lines.append(line)
            if not continuation:
                if bad_line is not None:
                    raise ProtocolError(ProtocolErrorKind.MALFORMED_REPLY,
                                        f"cannot parse reply line {bad_line!r}")
                return Reply(code, lines, is_final=True)


def parse_pasv_reply(reply) -> Endpoint:
    """Extrae host y puerto de la última línea de una respuesta PASV."""
    line = reply.lines[-1] if isinstance(reply, Reply) else str(reply)
    matches = _PASV_TUPLE.findall(line)
    if not matches:
        logger.error(f"Failed to parse PASV response: {line}")
        raise ProtocolError(ProtocolErrorKind.PASV_PARSE_FAILURE, f"no address in {line!r}")
    numbers = [int(n) for n in matches[-1]]
    if any(n > 255 for n in numbers):
        raise ProtocolError(ProtocolErrorKind.PASV_PARSE_FAILURE, f"value out of range in {line!r}")
    host = '.'.join(str(n) for n in numbers[:4])
    port = numbers[4] * 256 + numbers[5]
    logger.debug(f"PASV parsed: {host}:{port}")
    return Endpoint(host, port)


def format_port_argument(host: str, port: int) -> str:
    """Formatea `h1,h2,h3,h4,p1,p2` para el comando PORT."""
    octets = host.split('.')
    if len(octets) != 4 or not all(o.isdigit() and int(o) <= 255 for o in octets):
        raise ValueError(f"Not an IPv4 address: {host}")
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    return ','.join(octets + [str(port // 256), str(port % 256)])


def parse_transfer_size(reply: Optional[Reply]) -> Optional[int]:
    """Busca `(<n> bytes)` en la respuesta que precede a la transferencia."""
    if reply is None:
        return None
    for line in reply.lines:
        match = _TRANSFER_SIZE.search(line)
        if match:
            return int(match.group(1))
    return None
