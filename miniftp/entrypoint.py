#!/usr/bin/env python3
"""
Entry point for the miniftp client.

`miniftp <host>` opens an interactive session on the terminal.
`miniftp --ui` starts the Streamlit web terminal instead.
"""

import os
import sys
import argparse
import getpass
import subprocess
import logging
from typing import Optional

from miniftp.core.commands import ClientCommandHandler
from miniftp.core.config import ClientConfig
from miniftp.core.connection import ControlConnectionManager
from miniftp.core.data_connection import DataChannelNegotiator
from miniftp.core.errors import ProtocolError
from miniftp.core.session import Session, TransferMode
from miniftp.ui.console import run_console

logger = logging.getLogger("miniftp")

APP_PATH = os.path.join(os.path.dirname(__file__), 'ui', 'app.py')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="miniftp", description="Minimal interactive FTP client")
    parser.add_argument("host", nargs="?", help="FTP server hostname")
    parser.add_argument("-p", "--port", type=int, default=None, help="Control port (default 21)")
    parser.add_argument("-t", "--timeout", type=float, default=None, help="Read timeout in seconds")
    parser.add_argument("--passive", action="store_true", help="Start in passive mode")
    parser.add_argument("-d", "--debug", action="store_true", help="Start with debug on")
    parser.add_argument("--log-level", default=None, help="Logging level (default WARNING)")
    parser.add_argument("--ui", action="store_true", help="Start the Streamlit web terminal")
    return parser


def setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )


def start_streamlit_client(host='0.0.0.0', port=8501):
    """
    Start the Streamlit FTP client UI.

    Args:
        host: Host to bind Streamlit to
        port: Port to expose Streamlit on (default: 8501)
    """
    logger.info(f"Starting Streamlit FTP Client UI on {host}:{port}...")

    cmd = [
        'streamlit',
        'run',
        APP_PATH,
        f'--server.port={port}',
        f'--server.address={host}',
        '--logger.level=info',
        '--client.showErrorDetails=true'
    ]

    # Replace the current process with the Streamlit process for proper signal handling
    try:
        os.execvp(cmd[0], cmd)
    except OSError as e:
        logger.error(f"Failed to exec Streamlit: {e}")
        try:
            subprocess.run([sys.executable, '-m'] + cmd, check=True)
        except subprocess.CalledProcessError as e2:
            logger.error(f"Streamlit exited with error code {e2.returncode}")
            sys.exit(e2.returncode)


def start_session(config: ClientConfig, display=print, username: Optional[str] = None,
                  password: Optional[str] = None, prompt=input,
                  prompt_password=getpass.getpass) -> ClientCommandHandler:
    """
    Conecta, lee el saludo y hace el login. Si algo falla tras conectar,
    la conexión de control se cierra antes de propagar el error.
    """
    conn = ControlConnectionManager(config.host, config.port, config.timeout, display=display)
    conn.connect()
    try:
        conn.read_banner()
        session = Session(conn, debug=config.debug,
                          mode=TransferMode.PASSIVE if config.passive else TransferMode.ACTIVE)
        negotiator = DataChannelNegotiator(timeout=config.timeout,
                                           active_data_port=config.active_data_port,
                                           display=display)
        handler = ClientCommandHandler(session, display=display, negotiator=negotiator,
                                       prompt_password=prompt_password)
        handler.login(username=username, password=password, prompt=prompt)
    except (ProtocolError, EOFError, KeyboardInterrupt):
        conn.disconnect()
        raise
    return handler


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    config = ClientConfig.from_env().apply_args(args)
    setup_logging(config.log_level)

    if args.ui:
        start_streamlit_client()
        return 0

    if not config.host:
        parser.print_usage(sys.stderr)
        print("miniftp: error: a server hostname is required", file=sys.stderr)
        sys.exit(1)

    logger.debug(f"Configuration: {config}")
    try:
        handler = start_session(config)
    except (ConnectionError, ProtocolError) as e:
        print(str(e), file=sys.stderr)
        sys.exit(1)
    except (EOFError, KeyboardInterrupt):
        print(file=sys.stderr)
        sys.exit(1)

    run_console(handler)
    return 0


if __name__ == '__main__':
    main()
