from datetime import datetime
import logging

import streamlit as st

from miniftp.core.commands import ClientCommandHandler, HELP_MESSAGE
from miniftp.core.config import ClientConfig
from miniftp.core.errors import ProtocolError
from miniftp.entrypoint import start_session

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


st.set_page_config(page_title="miniftp", layout="wide")

# --- Helpers -----------------------------------------------------------------

if "transcript" not in st.session_state:
    st.session_state["transcript"] = []
if "handler" not in st.session_state:
    st.session_state["handler"] = None


def display(line: str):
    """Display sink: todas las líneas acaban en la transcripción de la página."""
    st.session_state["transcript"].append(line)


def connect(host: str, port: int, timeout: float, user: str, password: str, passive: bool):
    config = ClientConfig.from_env()
    config.host = host
    config.port = port
    config.timeout = timeout
    config.passive = passive
    return start_session(config, display=display, username=user, password=password,
                         prompt_password=lambda prompt: password)


# --- UI ----------------------------------------------------------------------
st.title("miniftp — web terminal")

with st.sidebar:
    st.header("Connection")
    host = st.text_input("Host", value="127.0.0.1")
    port = st.number_input("Port", min_value=1, max_value=65535, value=21)
    timeout = st.number_input("Timeout (s)", min_value=1.0, max_value=120.0, value=30.0)
    user = st.text_input("User", value="anonymous")
    password = st.text_input("Password", type="password")
    passive = st.checkbox("Passive mode", value=True)
    if st.button("Connect"):
        logger.info(f"[UI] Connect button clicked: {host}:{port}")
        try:
            st.session_state["handler"] = connect(host, int(port), float(timeout), user, password, passive)
            st.success(f"Connected to {host}:{port}")
        except (ConnectionError, ProtocolError) as e:
            logger.error(f"[UI] Connection failed: {e}")
            st.session_state["handler"] = None
            display(str(e))
            st.error(f"Connection failed: {e}")
    if st.button("Disconnect"):
        handler = st.session_state.get("handler")
        if handler:
            handler.execute("quit")
            st.session_state["handler"] = None
            st.info("Disconnected")

col1, col2 = st.columns([3, 1])

with col1:
    st.subheader("Terminal")
    cmd = st.text_input("Command", placeholder="e.g. dir", key="cmd_input")
    if st.button("Run") and cmd:
        handler: ClientCommandHandler = st.session_state.get("handler")
        if not handler:
            st.error("Not connected. Connect first.")
        else:
            display(f"ftp> {cmd}")
            with st.spinner("Running..."):
                alive = handler.execute(cmd)
            if not alive:
                st.session_state["handler"] = None
                st.info("Session closed")
    st.code("\n".join(st.session_state["transcript"][-500:]) or "\n".join(HELP_MESSAGE))

with col2:
    st.subheader("History")
    handler = st.session_state.get("handler")
    if handler is None:
        st.info("No history: not connected")
    else:
        if st.button("Clear History"):
            handler.clear_history()
        for entry in reversed(handler.get_history()[-100:]):
            t = entry.get("time")
            time_str = t.isoformat() if isinstance(t, datetime) else str(t)
            with st.expander(f"{time_str} — {entry.get('command')}"):
                reply = entry.get("reply")
                if reply is not None:
                    st.write(f"Code: {reply.code}")
                    st.write(f"Type: {reply.type}")
                    st.code(str(reply))
                if entry.get("error"):
                    st.error("This entry had an error")

st.markdown("---")
st.caption("miniftp web terminal — one command at a time over a single FTP control connection.")
