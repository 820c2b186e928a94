"""wachat — Main entry point."""

import asyncio
import logging
import os
import sys

from .config import WachatSettings, load_settings
from .handlers import MessageHandler
from .whatsapp.connection import ConnectionManager
from .whatsapp.qr_server import start_qr_server
from .whatsapp.wacli import WacliTransport

_log_format = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger("wachat")


def setup_logging(log_file: str, debug: bool = False):
    """Console + UTF-8 file logging, configured once per process."""
    path = os.path.expanduser(log_file)
    handlers: list[logging.Handler] = [logging.StreamHandler()]   # stderr (console)
    try:
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    except OSError as e:
        print(f"Cannot open log file {path}: {e}", file=sys.stderr)

    logging.basicConfig(level=logging.INFO, format=_log_format, handlers=handlers)
    if debug:
        logging.getLogger("wachat").setLevel(logging.DEBUG)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def run(settings: WachatSettings | None = None) -> int:
    """Main run loop. Returns the process exit code."""
    settings = settings or load_settings()
    settings.data_path.mkdir(parents=True, exist_ok=True)

    server = None
    try:
        server = start_qr_server(settings.qr_path, settings.http_host, settings.http_port, settings.bot_name)
    except OSError as e:
        logger.error(f"QR server failed to start on port {settings.http_port}: {e}")

    handler = MessageHandler(settings)
    manager = ConnectionManager(
        settings,
        transport_factory=lambda: WacliTransport(settings.wacli_path, settings.wacli_home),
        handler=handler,
    )
    handler.shutdown_callback = manager.request_stop

    logger.info(f"{settings.bot_name} is starting. Press Ctrl+C to stop.")
    try:
        return await manager.run()
    except asyncio.CancelledError:
        return 0
    finally:
        if manager.transport is not None:
            await manager.transport.disconnect()
        if server is not None:
            server.shutdown()
        logger.info("Stopped.")


def main(debug: bool = False):
    """Entry point."""
    settings = load_settings()
    setup_logging(settings.log_file, debug=debug)
    try:
        code = asyncio.run(run(settings))
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
