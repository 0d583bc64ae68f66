import logging
from typing import Callable

from miniftp.core.commands import ClientCommandHandler

logger = logging.getLogger(__name__)

PROMPT = "ftp> "


def run_console(handler: ClientCommandHandler, read_line: Callable[[str], str] = input):
    """Bucle interactivo: una orden cada vez hasta `quit` o fin de la entrada."""
    while True:
        try:
            line = read_line(PROMPT)
        except (EOFError, KeyboardInterrupt):
            logger.info("End of input, closing session")
            handler.display("")
            handler.execute("quit")
            break
        try:
            alive = handler.execute(line)
        except KeyboardInterrupt:
            # La orden quedó a medias: no se puede enviar QUIT con seguridad
            logger.warning("Interrupted during command, closing session")
            handler.display("")
            handler.abort()
            break
        if not alive:
            break
