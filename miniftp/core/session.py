from enum import Enum
from typing import Optional

from miniftp.core.connection import ControlConnectionManager, mask_command


class TransferType(Enum):
    ASCII = "A"
    BINARY = "I"


class TransferMode(Enum):
    ACTIVE = "active"
    PASSIVE = "passive"


class Session:
    """
    Estado de cliente de una conexión con el servidor.
    Solo el ClientCommandHandler lo modifica.
    """

    def __init__(self, control: ControlConnectionManager,
                 transfer_type: TransferType = TransferType.BINARY,
                 mode: TransferMode = TransferMode.ACTIVE,
                 debug: bool = False):
        self.control = control
        self.transfer_type = transfer_type
        self.mode = mode
        self.debug = debug
        self.current_data_port: Optional[int] = None
        self.closed = False

    @property
    def host(self) -> str:
        return self.control.host

    @property
    def passive(self) -> bool:
        return self.mode is TransferMode.PASSIVE

    def __str__(self):
        return (f"Session(host={self.host}, type={self.transfer_type.name}, "
                f"mode={self.mode.value}, debug={self.debug})")

    def trace(self, display, verb: str, arg: Optional[str] = None):
        """En modo debug muestra la orden saliente como `---> VERB ARG`."""
        if self.debug and display is not None:
            line = verb if arg is None else f"{verb} {arg}"
            display(f"---> {mask_command(line)}")

    def send(self, display, verb: str, arg: Optional[str] = None, echo: bool = True):
        self.trace(display, verb, arg)
        return self.control.send(verb, arg, echo=echo)
