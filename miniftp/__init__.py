"""miniftp: cliente FTP interactivo mínimo."""

__version__ = "0.1.0"
