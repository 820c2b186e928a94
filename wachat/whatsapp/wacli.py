"""WhatsApp transport backed by the wacli binary.

`wacli sync --follow` keeps the WebSocket alive and writes every message
into a local SQLite store. Inbound traffic is picked up by polling that
store; outbound messages shell out to `wacli send ...`.

Requires: wacli binary installed (`go install github.com/steipete/wacli@latest`).
"""

import asyncio
import hashlib
import logging
import mimetypes
import os
import re
import shutil
import sqlite3
import tempfile
import time
from typing import Optional

from ..errors import ConnectionClosedError, TransportError
from .transport import (
    ConnectionUpdate,
    DisconnectReason,
    InboundMessage,
    MEDIA_TYPES,
    Transport,
)

logger = logging.getLogger("wachat.wacli")

# Reliability: dedup / echo
_DEDUP_TTL = 120        # 2 minutes
_ECHO_TTL = 20          # 20 seconds
_DEDUP_MAX = 5000       # max cache entries before prune
_POLL_INTERVAL = 2.0

# WhatsApp pairing payloads look like "2@AbC...,XyZ...,..."
_QR_RE = re.compile(r"^\d@[\w+/=,.-]+$")

_LOGGED_OUT_MARKERS = ("logged out", "not logged in", "unauthorized", "401")
_REPLACED_MARKERS = ("replaced", "conflict", "another", "store is locked")
_CLOSED_MARKERS = ("not connected", "connection closed", "connection lost", "websocket", "timed out")


def status_from_exit(returncode: Optional[int], stderr: str) -> int:
    """Derive a disconnect status code from how `wacli sync` ended."""
    err = (stderr or "").lower()
    if any(m in err for m in _LOGGED_OUT_MARKERS):
        return DisconnectReason.LOGGED_OUT
    if any(m in err for m in _REPLACED_MARKERS):
        return DisconnectReason.CONNECTION_REPLACED
    if returncode == 0:
        return DisconnectReason.CONNECTION_CLOSED
    return DisconnectReason.CONNECTION_LOST


def _normalize_media_type(media_type: Optional[str], mime_type: Optional[str]) -> Optional[str]:
    if not media_type:
        return None
    media_type = media_type.lower()
    if media_type in MEDIA_TYPES:
        return media_type
    if media_type in ("ptt", "voice"):
        return "audio"
    if media_type == "gif":
        return "video"
    if mime_type:
        major = mime_type.split("/", 1)[0]
        if major in ("image", "video", "audio"):
            return major
    return "document"


class WacliTransport(Transport):
    """Transport that drives wacli subprocesses."""

    def __init__(self, wacli_path: str = "wacli", wacli_home: str = "~/.wacli"):
        super().__init__()
        self._wacli_path = wacli_path
        self._home = os.path.expanduser(wacli_home)
        self._wacli_db = os.path.join(self._home, "wacli.db")
        self._session_db = os.path.join(self._home, "session.db")
        self._process: Optional[asyncio.subprocess.Process] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._last_rowid: int = 0
        self._running = False
        self._send_lock = asyncio.Lock()
        # Dedup / echo state
        self._seen_rowids: set[int] = set()
        self._seen_hashes: dict[str, float] = {}     # "chat_jid:md5" -> timestamp
        self._echo_hashes: dict[str, float] = {}     # "chat_jid:md5" -> timestamp
        self._dispatch_tasks: set[asyncio.Task] = set()
        self._last_prune: float = 0.0

    def _resolve_wacli(self) -> Optional[str]:
        if os.path.isfile(self._wacli_path) and os.access(self._wacli_path, os.X_OK):
            return self._wacli_path
        return shutil.which(self._wacli_path)

    # ── Lifecycle ──────────────────────────────────────────────

    async def connect(self):
        resolved = self._resolve_wacli()
        if not resolved:
            raise TransportError(
                f"wacli binary not found ({self._wacli_path}). "
                "Install: go install github.com/steipete/wacli@latest"
            )
        self._wacli_path = resolved

        if not os.path.isfile(self._session_db):
            await self._emit_connection(ConnectionUpdate(connection="connecting"))
            await self._login()

        self._running = True
        ok = await self._start_sync()
        if not ok:
            self._running = False
            raise TransportError("Failed to start wacli sync")

        if os.path.isfile(self._wacli_db):
            self._poll_task = asyncio.create_task(self._poll_loop())
        else:
            logger.error(f"wacli database not found at {self._wacli_db}, inbound messages will not work")

        logger.info("WhatsApp connection opened (wacli sync running).")
        await self._emit_connection(ConnectionUpdate(connection="open"))

    async def disconnect(self):
        self._running = False

        for task in list(self._dispatch_tasks):
            task.cancel()
        self._dispatch_tasks.clear()

        if self._poll_task and not self._poll_task.done():
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
        self._poll_task = None

        await self._stop_sync()
        logger.info("WhatsApp connection torn down.")

    async def _login(self):
        """Run `wacli auth` and surface pairing QR payloads as connection updates."""
        logger.info("No wacli session found, starting QR login...")
        proc = await asyncio.create_subprocess_exec(
            self._wacli_path, "auth",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        tail: list[str] = []
        assert proc.stdout is not None
        async for raw in proc.stdout:
            line = raw.decode("utf-8", errors="replace").strip()
            if not line:
                continue
            if _QR_RE.match(line):
                await self._emit_connection(ConnectionUpdate(connection="connecting", qr=line))
            else:
                tail = (tail + [line])[-20:]
                logger.debug(f"[wacli auth] {line}")
        await proc.wait()
        if proc.returncode != 0:
            raise TransportError(f"wacli auth failed (rc={proc.returncode}): {' '.join(tail)[:200]}")
        logger.info("wacli login completed.")

    async def _start_sync(self) -> bool:
        """Start the long-running `wacli sync --follow` process."""
        await self._stop_sync()

        try:
            self._process = await asyncio.create_subprocess_exec(
                self._wacli_path, "sync", "--follow",
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except Exception as e:
            logger.error(f"Failed to start wacli sync: {e}")
            self._process = None
            return False

        self._monitor_task = asyncio.create_task(self._monitor_loop(self._process))
        return True

    async def _stop_sync(self):
        """Stop the sync process (if any)."""
        # Stop monitor task first so the exit is not reported as a disconnect.
        if self._monitor_task and not self._monitor_task.done():
            self._monitor_task.cancel()
            try:
                await self._monitor_task
            except asyncio.CancelledError:
                pass
        self._monitor_task = None

        if self._process:
            try:
                self._process.terminate()
                await asyncio.wait_for(self._process.wait(), timeout=5)
            except (asyncio.TimeoutError, ProcessLookupError):
                try:
                    self._process.kill()
                except ProcessLookupError:
                    pass
            self._process = None

    async def _monitor_loop(self, process: asyncio.subprocess.Process):
        """Report an unexpected end of `wacli sync` as a ``close`` update."""
        try:
            _, stderr = await process.communicate()
        except asyncio.CancelledError:
            return
        err = stderr.decode("utf-8", errors="replace")[-2000:] if stderr else ""
        if not self._running:
            return
        code = status_from_exit(process.returncode, err)
        logger.warning(f"wacli sync ended (rc={process.returncode}, status={code}): {err[-200:]}")
        self._process = None
        self._running = False
        await self._emit_connection(ConnectionUpdate(connection="close", status_code=code))

    # ── Inbound DB poller ─────────────────────────────────────

    async def _poll_loop(self):
        """Poll the wacli SQLite store for new messages.

        SQLite reads are safe while wacli sync writes (WAL mode).
        """
        db_path = self._wacli_db

        # Seed last_rowid to current max so only NEW messages are processed
        try:
            conn = sqlite3.connect(db_path, timeout=5)
            cur = conn.execute("SELECT MAX(rowid) FROM messages")
            self._last_rowid = cur.fetchone()[0] or 0
            conn.close()
            logger.info(f"Poller started (last_rowid={self._last_rowid}, db={db_path})")
        except Exception as e:
            logger.error(f"Failed to read wacli DB: {e}")
            return

        while self._running:
            try:
                await asyncio.sleep(_POLL_INTERVAL)
                if not self._running:
                    break

                rows = self._fetch_rows(db_path)
                if rows:
                    logger.debug(f"poll: {len(rows)} new row(s) after rowid {self._last_rowid}")

                now = time.time()
                if now - self._last_prune > 60:
                    self._prune_caches()

                for row in rows:
                    msg = self._accept_row(row, now)
                    if msg:
                        self._dispatch(msg)

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in poll loop: {e}", exc_info=True)
                await asyncio.sleep(5)

    def _fetch_rows(self, db_path: str) -> list:
        conn = sqlite3.connect(db_path, timeout=5)
        conn.row_factory = sqlite3.Row
        try:
            cur = conn.execute("""
                SELECT rowid, chat_jid, sender_jid, sender_name, text,
                       from_me, media_type, mime_type, media_caption, msg_id
                FROM messages
                WHERE rowid > ?
                  AND ((text IS NOT NULL AND text != '') OR media_type IS NOT NULL)
                  AND chat_jid != 'status@broadcast'
                ORDER BY rowid ASC
            """, (self._last_rowid,))
            return cur.fetchall()
        finally:
            conn.close()

    def _accept_row(self, row, now: float) -> Optional[InboundMessage]:
        """Apply rowid/content dedup and echo suppression; build the message."""
        rowid = row["rowid"]
        self._last_rowid = max(self._last_rowid, rowid)
        if rowid in self._seen_rowids:
            return None
        self._seen_rowids.add(rowid)

        text = (row["text"] or "").strip()
        chat_jid = row["chat_jid"] or ""

        if text and chat_jid:
            h = self._content_hash(chat_jid, text)
            if h in self._echo_hashes and (now - self._echo_hashes[h]) < _ECHO_TTL:
                del self._echo_hashes[h]
                logger.debug(f"echo suppressed: {text[:60]}")
                return None
            if h in self._seen_hashes and (now - self._seen_hashes[h]) < _DEDUP_TTL:
                return None
            self._seen_hashes[h] = now

        mime_type = row["mime_type"]
        raw_media = row["media_type"]
        return InboundMessage(
            msg_id=row["msg_id"] or str(rowid),
            chat_jid=chat_jid,
            sender_jid=row["sender_jid"] or chat_jid,
            push_name=row["sender_name"] or "",
            text=text,
            caption=(row["media_caption"] or "").strip(),
            media_type=_normalize_media_type(raw_media, mime_type),
            mime_type=mime_type,
            is_gif=(raw_media or "").lower() == "gif" or mime_type == "image/gif",
            from_me=bool(row["from_me"]),
        )

    # ── Dispatch ──────────────────────────────────────────────

    def _dispatch(self, msg: InboundMessage):
        """Hand one message to the callbacks without blocking the poller.

        Every message is delivered on its own; handling starts in arrival order.
        """
        task = asyncio.create_task(self._emit_message(msg))
        self._dispatch_tasks.add(task)
        task.add_done_callback(self._dispatch_tasks.discard)

    def _content_hash(self, chat_jid: str, text: str) -> str:
        """Return a compact content hash for dedup/echo detection."""
        return f"{chat_jid}:{hashlib.md5(text.encode()).hexdigest()[:12]}"

    def _prune_caches(self):
        """Remove expired entries from dedup/echo caches."""
        now = time.time()
        self._seen_hashes = {k: v for k, v in self._seen_hashes.items() if (now - v) < _DEDUP_TTL}
        self._echo_hashes = {k: v for k, v in self._echo_hashes.items() if (now - v) < _ECHO_TTL}
        if len(self._seen_rowids) > _DEDUP_MAX:
            sorted_ids = sorted(self._seen_rowids)
            self._seen_rowids = set(sorted_ids[-_DEDUP_MAX:])
        self._last_prune = now

    # ── Outbound ───────────────────────────────────────────────

    async def _run_locked(self, args: list[str], timeout: float) -> bytes:
        """Run a wacli command with sync paused.

        `wacli sync --follow` holds an exclusive lock on the store, so every
        other wacli command must run while sync is stopped.
        """
        async with self._send_lock:
            was_syncing = self._process is not None
            if was_syncing:
                await self._stop_sync()
            try:
                proc = await asyncio.create_subprocess_exec(
                    self._wacli_path, *args,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
                try:
                    stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
                except asyncio.TimeoutError:
                    proc.kill()
                    raise ConnectionClosedError(f"wacli {args[0]} timed out after {timeout}s")
                if proc.returncode != 0:
                    err = stderr.decode("utf-8", errors="replace") if stderr else ""
                    message = f"wacli {' '.join(args[:2])} failed (rc={proc.returncode}): {err[:200]}"
                    if any(m in err.lower() for m in _CLOSED_MARKERS):
                        raise ConnectionClosedError(message)
                    raise TransportError(message)
                return stdout or b""
            finally:
                if self._running and was_syncing:
                    ok = await self._start_sync()
                    if not ok:
                        logger.error("Failed to restart wacli sync after command")

    async def send_text(self, jid: str, text: str, quoted: Optional[InboundMessage] = None):
        if not text:
            return
        await self._run_locked(["send", "text", "--to", jid, "--message", text], timeout=30)
        self._echo_hashes[self._content_hash(jid, text.strip())] = time.time()

    async def _send_file(self, jid: str, data: bytes, mime_type: str, caption: str = ""):
        suffix = mimetypes.guess_extension(mime_type or "") or ".bin"
        fd, path = tempfile.mkstemp(prefix="wachat-", suffix=suffix)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            args = ["send", "file", "--to", jid, "--file", path]
            if caption:
                args.extend(["--caption", caption])
            await self._run_locked(args, timeout=120)
            logger.info(f"sent {mime_type} ({len(data)} bytes) to {jid}")
        finally:
            try:
                os.unlink(path)
            except OSError:
                pass

    async def send_image(self, jid: str, data: bytes, caption: str = "", mime_type: str = "image/jpeg"):
        await self._send_file(jid, data, mime_type, caption)

    async def send_audio(self, jid: str, data: bytes, mime_type: str = "audio/mpeg"):
        await self._send_file(jid, data, mime_type)

    async def send_video(self, jid: str, data: bytes, caption: str = "", mime_type: str = "video/mp4"):
        await self._send_file(jid, data, mime_type, caption)

    async def send_reaction(self, jid: str, msg_id: str, emoji: str):
        logger.debug(f"reaction {emoji} on {msg_id} in {jid} skipped: not supported by wacli")

    async def send_presence(self, jid: str, state: str):
        logger.debug(f"presence '{state}' to {jid} skipped: not supported by wacli")

    # ── Media download ────────────────────────────────────────

    async def download_media(self, msg: InboundMessage) -> Optional[bytes]:
        if not msg.msg_id or not msg.chat_jid:
            return None
        try:
            await self._run_locked(
                ["media", "download", "--chat", msg.chat_jid, "--id", msg.msg_id], timeout=60,
            )
        except TransportError as e:
            logger.error(f"wacli media download failed: {e}")
            return None

        # The download path is recorded back into the store
        try:
            conn = sqlite3.connect(self._wacli_db, timeout=5)
            try:
                row = conn.execute(
                    "SELECT local_path FROM messages WHERE msg_id = ? LIMIT 1", (msg.msg_id,),
                ).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as e:
            logger.error(f"Failed to query local_path: {e}")
            return None

        if not row or not row[0] or not os.path.isfile(row[0]):
            logger.warning(f"Media downloaded but local_path not found for msg_id={msg.msg_id}")
            return None
        with open(row[0], "rb") as f:
            return f.read()
