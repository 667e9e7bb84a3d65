"""
Agent server — asyncio unix socket speaking the SSH agent protocol.

Each connection runs as its own task. Requests are dispatched to a worker
thread because a signature may block on a password, code or presence
prompt; other connections keep being served meanwhile. There is no
server-side timeout on that prompt and no cancellation of an in-flight
signature.
"""
import os
import signal
import asyncio
import logging
import contextlib
from pathlib import Path
from typing import Optional

from .handlers import AgentHandler, ResidentAgent, SecureAgent
from .protocol import HEADER, MAX_MESSAGE_SIZE
from ..auth.base import AuthMode
from ..auth.mode import get_auth_provider
from ..auth.secret_vault import SecretVault
from ..conf import AgentSettings, setup_logging
from ..exceptions import IOFailure
from ..fileio import ensure_private_dir
from ..otp.prompt import Prompter
from ..vault.store import KeyStore

logger = logging.getLogger("fssh.agent")

SOCKET_MODE = 0o600


class AgentServer:
    """Serves one ``AgentHandler`` on a filesystem socket."""

    def __init__(self, handler: AgentHandler, socket_path: Path | str):
        self._handler = handler
        self._socket_path = Path(socket_path)
        self._server: Optional[asyncio.AbstractServer] = None
        self._connections = 0

    @property
    def socket_path(self) -> Path:
        return self._socket_path

    @property
    def handler(self) -> AgentHandler:
        return self._handler

    async def start(self) -> None:
        """Bind the socket (replacing a stale one) and start accepting."""
        path = self._socket_path
        ensure_private_dir(path.parent)
        try:
            if path.exists() or path.is_symlink():
                path.unlink()
            self._server = await asyncio.start_unix_server(
                self._handle_client, path=str(path),
            )
            os.chmod(path, SOCKET_MODE)
        except OSError as err:
            raise IOFailure(f"cannot bind agent socket {path}: {err}") from err
        logger.info(
            "Agent listening on %s (mode=%s)",
            path, self._handler.provider.mode.value,
        )

    async def serve_forever(self) -> None:
        if self._server is None:
            await self.start()
        await self._server.serve_forever()

    async def close(self) -> None:
        """Stop accepting, remove the socket and clear cached secrets."""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        with contextlib.suppress(FileNotFoundError):
            self._socket_path.unlink()
        if isinstance(self._handler, ResidentAgent):
            self._handler.forget_keys()
        self._handler.provider.clear_cache()
        logger.info("Agent stopped")

    async def __aenter__(self) -> "AgentServer":
        await self.start()
        return self

    async def __aexit__(self, *exc) -> None:
        await self.close()

    async def _handle_client(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
    ) -> None:
        self._connections += 1
        conn_id = self._connections
        loop = asyncio.get_running_loop()
        logger.debug("Connection %d opened", conn_id)
        try:
            while True:
                try:
                    header = await reader.readexactly(HEADER.size)
                except asyncio.IncompleteReadError:
                    break
                (length,) = HEADER.unpack(header)
                if length == 0 or length > MAX_MESSAGE_SIZE:
                    logger.warning(
                        "Connection %d: invalid message length %d, closing", conn_id, length,
                    )
                    break
                try:
                    message = await reader.readexactly(length)
                except asyncio.IncompleteReadError:
                    logger.warning("Connection %d: truncated message", conn_id)
                    break
                response = await loop.run_in_executor(
                    None, self._handler.dispatch, message,
                )
                writer.write(response)
                await writer.drain()
        except ConnectionError as err:
            logger.debug("Connection %d: %s", conn_id, err)
        finally:
            writer.close()
            with contextlib.suppress(ConnectionError):
                await writer.wait_closed()
            logger.debug("Connection %d closed", conn_id)


def build_agent(
    settings: AgentSettings,
    vault: Optional[SecretVault] = None,
    prompter: Optional[Prompter] = None,
) -> AgentServer:
    """Assemble provider, handler and server from settings."""
    provider = get_auth_provider(settings, vault=vault, prompter=prompter)
    store = KeyStore(settings.keys_dir)
    handler: AgentHandler
    if settings.require_auth_per_sign:
        handler = SecureAgent(store, provider)
        logger.info(
            "Secure mode: authentication per signature (master key TTL=%ds)",
            settings.master_key_ttl,
        )
    else:
        handler = ResidentAgent(store, provider)
        logger.info("Convenience mode: all keys decrypted at start-up")
    return AgentServer(handler, settings.socket_path)


async def _serve(server: AgentServer) -> None:
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, stop.set)
    async with server:
        logger.info("export SSH_AUTH_SOCK=%s", server.socket_path)
        await stop.wait()


def run_agent(
    settings: Optional[AgentSettings] = None,
    vault: Optional[SecretVault] = None,
    prompter: Optional[Prompter] = None,
) -> None:
    """Blocking entry point: serve until SIGINT/SIGTERM."""
    settings = settings or AgentSettings.from_env()
    setup_logging(settings.log_level)
    server = build_agent(settings, vault=vault, prompter=prompter)
    provider = server.handler.provider
    if provider.mode is AuthMode.OTP and settings.require_auth_per_sign:
        # unlock up front so the first ssh connection does not wait on prompts
        provider.unlock_master_key()
        logger.info("OTP unlocked at start-up")
    try:
        asyncio.run(_serve(server))
    finally:
        provider.clear_cache()
