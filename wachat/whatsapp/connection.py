"""Connection lifecycle: QR login, reconnect policy, supervisor loop."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import qrcode

from .transport import ConnectionUpdate, DisconnectReason, InboundMessage, PresenceUpdate, Transport

logger = logging.getLogger("wachat.connection")

CONFLICT_CODES = (
    DisconnectReason.CONNECTION_REPLACED,
    DisconnectReason.BAD_SESSION,
    DisconnectReason.FORBIDDEN,
)

# Decision actions
RECONNECT = "reconnect"
STOP = "stop"      # logged out, or shutdown requested
ABORT = "abort"    # too many session conflicts, exit 1


def render_qr(payload: str, png_path: Path, print_terminal: bool = True) -> Path:
    """Render a pairing payload to the terminal and to a PNG file."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=8,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)

    if print_terminal:
        qr.print_ascii(invert=True)

    png_path.parent.mkdir(parents=True, exist_ok=True)
    img = qr.make_image(fill_color="black", back_color="white")
    img.save(str(png_path))
    logger.info(f"QR code saved to {png_path}")
    return png_path


@dataclass
class ReconnectDecision:
    action: str
    delay: float = 0.0


class ReconnectPolicy:
    """Decides what to do after a connection update. Holds no I/O."""

    def __init__(self, max_conflicts: int = 2, reconnect_delay: float = 5.0, conflict_delay: float = 20.0):
        self.max_conflicts = max_conflicts
        self.reconnect_delay = reconnect_delay
        self.conflict_delay = conflict_delay
        self.conflicts = 0

    def on_update(self, update: ConnectionUpdate) -> Optional[ReconnectDecision]:
        """Return a decision for ``close`` updates, None otherwise."""
        if update.connection == "open":
            self.conflicts = 0
            return None
        if update.connection != "close":
            return None

        code = update.status_code
        is_conflict = code in CONFLICT_CODES
        if is_conflict:
            self.conflicts += 1
            logger.warning(f"Session conflict (status {code}), count {self.conflicts}/{self.max_conflicts}")
            if self.conflicts >= self.max_conflicts:
                return ReconnectDecision(ABORT)

        if code == DisconnectReason.LOGGED_OUT:
            return ReconnectDecision(STOP)

        delay = self.conflict_delay if is_conflict else self.reconnect_delay
        return ReconnectDecision(RECONNECT, delay)


class ConnectionManager:
    """Keeps a transport connected and feeds its events to a handler.

    ``handler`` must provide ``attach(transport)``, ``handle_message(msg)``
    and ``handle_presence(update)``.
    """

    def __init__(
        self,
        settings,
        transport_factory: Callable[[], Transport],
        handler,
        sleep=asyncio.sleep,
    ):
        self.settings = settings
        self._factory = transport_factory
        self._handler = handler
        self._sleep = sleep
        self.policy = ReconnectPolicy(
            max_conflicts=settings.max_conflicts,
            reconnect_delay=settings.reconnect_delay,
            conflict_delay=settings.conflict_reconnect_delay,
        )
        self.transport: Optional[Transport] = None
        self.state: str = "connecting"
        self._updates: Optional[asyncio.Queue] = None
        self._stop_requested = False

    def request_stop(self):
        """Stop after the current event; run() returns 0."""
        self._stop_requested = True
        if self._updates is not None:
            self._updates.put_nowait(None)

    async def run(self) -> int:
        """Supervise the connection. Returns the process exit code."""
        while not self._stop_requested:
            transport = self._factory()
            self.transport = transport
            self._updates = asyncio.Queue()
            transport.on_connection_update(self._on_connection_update)
            transport.on_message(self._on_message)
            transport.on_presence(self._on_presence)
            self._handler.attach(transport)

            try:
                await transport.connect()
            except Exception as e:
                logger.error(f"Failed to start WhatsApp connection: {e}", exc_info=True)
                await self._teardown(transport)
                logger.info(f"Retrying in {self.settings.boot_retry_delay}s...")
                await self._sleep(self.settings.boot_retry_delay)
                continue

            decision = await self._wait_for_decision()
            await self._teardown(transport)

            if decision.action == ABORT:
                logger.error("Too many session conflicts. Another instance is probably running. Exiting.")
                return 1
            if decision.action == STOP:
                if not self._stop_requested:
                    logger.error("Logged out. Delete the wacli session and restart to scan a new QR code.")
                return 0

            logger.info(f"Connection closed, reconnecting in {decision.delay}s...")
            await self._sleep(decision.delay)
        return 0

    async def _wait_for_decision(self) -> ReconnectDecision:
        while True:
            update = await self._updates.get()
            if update is None:
                return ReconnectDecision(STOP)
            if update.connection:
                self.state = update.connection
            if update.connection == "open":
                logger.info("WhatsApp connection is open.")
            decision = self.policy.on_update(update)
            if decision is not None:
                return decision

    async def _on_connection_update(self, update: ConnectionUpdate):
        """Render pairing QRs as they arrive; connect() may still be waiting on the scan."""
        if update.qr:
            logger.info("Scan the QR code below with WhatsApp (Linked devices)")
            try:
                render_qr(update.qr, self.settings.qr_path)
            except OSError as e:
                logger.error(f"Failed to save QR image: {e}")
        await self._updates.put(update)

    async def _teardown(self, transport: Transport):
        try:
            await transport.disconnect()
        except Exception as e:
            logger.warning(f"Error tearing down transport: {e}")
        self.state = "close"

    async def _on_message(self, msg: InboundMessage):
        await self._handler.handle_message(msg)

    async def _on_presence(self, update: PresenceUpdate):
        await self._handler.handle_presence(update)
