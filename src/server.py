"""Event bridge server and orchestration.

A host process (game server plugin or proxy) connects over TCP and sends
one JSON object per line: ``handshake`` when a connection asks for a host,
``join`` once the session is established, ``quit``, ``reload`` and
``stats``. Label changes and message commands are written back on the same
stream.
"""

import asyncio
import os
import socket
import traceback
from datetime import datetime
from typing import Dict, Set

from constants import BUF_SIZE, RELOAD_PERMISSION
from hostnames import extract_requested_host
from interfaces import ICommandSink, ILabelStore
from json_utils import json_dumps, json_line, json_loads
from tagger import SessionInfo


class BridgeLabelStore(ILabelStore):
    """Label view of the sessions reported by connected hosts.

    Every mutation is mirrored to the host connection owning the session.
    Sessions that were never attached, or have quit, are left alone.
    """

    def __init__(self):
        self._labels: Dict[str, Set[str]] = {}
        self._writers: Dict[str, asyncio.StreamWriter] = {}

    def attach(self, session_id: str, writer, labels) -> None:
        self._labels[session_id] = set(labels or ())
        self._writers[session_id] = writer

    def detach(self, session_id: str) -> None:
        self._labels.pop(session_id, None)
        self._writers.pop(session_id, None)

    def detach_writer(self, writer) -> None:
        for sid in [s for s, w in self._writers.items() if w is writer]:
            self.detach(sid)

    def writer_for(self, session_id: str):
        return self._writers.get(session_id)

    def has_session(self, session_id: str) -> bool:
        return session_id in self._labels

    def has_label(self, session_id: str, name: str) -> bool:
        return name in self._labels.get(session_id, ())

    def add_label(self, session_id: str, name: str) -> None:
        labels = self._labels.get(session_id)
        if labels is None:
            return
        labels.add(name)
        self._send(session_id, {"type": "add_label", "session_id": session_id, "label": name})

    def remove_label(self, session_id: str, name: str) -> bool:
        labels = self._labels.get(session_id)
        if not labels or name not in labels:
            return False
        labels.discard(name)
        self._send(session_id, {"type": "remove_label", "session_id": session_id, "label": name})
        return True

    def labels(self, session_id: str) -> Set[str]:
        return set(self._labels.get(session_id, ()))

    def _send(self, session_id: str, frame) -> None:
        writer = self._writers.get(session_id)
        if writer is None or writer.is_closing():
            return
        writer.write(json_line(frame))


class SessionCommandSink(ICommandSink):
    """Sends a command frame to the host connection the session joined on."""

    def __init__(self, label_store: BridgeLabelStore):
        self.label_store = label_store

    def dispatch(self, command: str, session_id=None) -> bool:
        writer = self.label_store.writer_for(session_id)
        if writer is None or writer.is_closing():
            return False
        writer.write(json_line({"type": "command", "command": command}))
        return True


def _frame_error(message: str):
    return {"type": "error", "error": message}


class EventServer:
    def __init__(self, config, tagger, label_store, statistics, logger):
        self.config = config
        self.tagger = tagger
        self.label_store = label_store
        self.statistics = statistics
        self.logger = logger
        self.server = None
        self.tasks = []
        self.writers: Set[asyncio.StreamWriter] = set()
        logger.set_error_counter_callback(statistics.increment_errors)

    async def handle_connection(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info("peername") or ("unknown", 0)
        self.writers.add(writer)
        self.logger.log_access(f"Host connected from {peer[0]}:{peer[1]}")
        try:
            while True:
                line = await reader.readline()
                if not line:
                    break
                if not line.strip():
                    continue
                try:
                    reply = self.handle_frame(line, writer)
                except Exception:
                    self.logger.log_error(f"{peer[0]} : {traceback.format_exc()}")
                    reply = _frame_error("frame could not be handled")
                if reply is not None:
                    writer.write(json_line(reply))
                await writer.drain()
        except (ConnectionError, asyncio.IncompleteReadError):
            pass
        except Exception:
            self.logger.log_error(f"{peer[0]} : {traceback.format_exc()}")
        finally:
            self.writers.discard(writer)
            self.label_store.detach_writer(writer)
            try:
                writer.close()
                await writer.wait_closed()
            except Exception:
                pass
            self.logger.log_access(f"Host disconnected {peer[0]}:{peer[1]}")

    def handle_frame(self, line: bytes, writer):
        try:
            event = json_loads(line)
        except Exception as e:
            return _frame_error(f"malformed frame: {e}")
        if not isinstance(event, dict):
            return _frame_error("frame must be a JSON object")

        kind = event.get("type")
        if kind == "handshake":
            session_id = event.get("session_id")
            if session_id is not None and not isinstance(session_id, str):
                return _frame_error("session_id must be a string")
            rule = self.tagger.on_early_event(
                event.get("host"),
                strong_id=session_id or None,
                weak_id=event.get("address"),
                original_handshake=event.get("original_handshake"),
            )
            return {
                "type": "decision",
                "host": extract_requested_host(event.get("host"), event.get("original_handshake")),
                "tag": rule.tag,
                "message": rule.has_message,
            }
        if kind == "join":
            session_id = event.get("session_id")
            if not isinstance(session_id, str) or not session_id:
                return _frame_error("join requires a non-empty string session_id")
            labels = event.get("labels")
            if labels is None:
                labels = []
            if not isinstance(labels, list) or not all(isinstance(x, str) for x in labels):
                return _frame_error("labels must be a list of strings")
            self.label_store.attach(session_id, writer, labels)
            session = SessionInfo(session_id, str(event.get("name") or session_id), event.get("address"))
            self.tagger.on_session_established(session)
            return None
        if kind == "quit":
            session_id = event.get("session_id")
            if not isinstance(session_id, str) or not session_id:
                return _frame_error("quit requires a non-empty string session_id")
            self.tagger.on_session_closed(session_id)
            self.label_store.detach(session_id)
            return None
        if kind == "reload":
            permissions = event.get("permissions")
            authorized = isinstance(permissions, list) and RELOAD_PERMISSION in permissions
            result = self.tagger.reload(authorized=authorized)
            return {
                "type": "reload",
                "ok": result.ok,
                "rules": result.rule_count,
                "known_tags": result.known_tag_count,
                "message": result.message,
            }
        if kind == "stats":
            payload = self.statistics.snapshot()
            payload["type"] = "stats"
            return payload
        return _frame_error(f"unknown event type: {kind!r}")

    async def print_banner(self) -> None:
        self.logger.info(
            f"\033[92m[INFO]:\033[97m DomainTags bridge is running on {self.config.host}:{self.config.port} at "
            f"{datetime.now().strftime('%H:%M on %Y-%m-%d')}"
        )
        if self.config.config_file:
            self.logger.info(f"\033[92m[INFO]:\033[97m Path to config: '{os.path.normpath(self.config.config_file)}'")
        else:
            self.logger.info("\033[92m[INFO]:\033[97m No config file given; no domain mappings are loaded")
        self.logger.info(
            f"\033[92m[INFO]:\033[97m {self.statistics.rules} rule(s), {self.statistics.known_tags} known tag(s)"
        )
        self.logger.info("")
        if self.config.log_error_file:
            self.logger.info(f"\033[92m[INFO]:\033[97m Error logging is enabled. Path to error log: '{self.config.log_error_file}'")
        else:
            self.logger.info("\033[92m[INFO]:\033[97m Error logging is disabled")
        if self.config.log_access_file:
            self.logger.info(f"\033[92m[INFO]:\033[97m Access logging is enabled. Path to access log: '{self.config.log_access_file}'")
        else:
            self.logger.info("\033[92m[INFO]:\033[97m Access logging is disabled")
        self.logger.info("")
        self.logger.info("\033[92m[INFO]:\033[97m To stop the bridge, press Ctrl+C")
        self.logger.info("")

    async def display_stats(self) -> None:
        while True:
            await asyncio.sleep(1)
            if not self.config.quiet:
                print(self.statistics.get_stats_display())
                print("\033[5A", end="")

    async def write_stats(self) -> None:
        if not self.config.stats_file:
            return
        stats_path = self.config.stats_file
        while True:
            await asyncio.sleep(1)
            try:
                payload = self.statistics.snapshot()
                strong, queues, queued = self.tagger.pending.pending_counts()
                payload["pending_by_session"] = strong
                payload["pending_addresses"] = queues
                payload["pending_by_address"] = queued
                payload["host"] = self.config.host
                payload["port"] = self.config.port
                payload["timestamp"] = datetime.now().isoformat()
                with open(stats_path, "w", encoding="utf-8") as f:
                    f.write(json_dumps(payload))
            except Exception:
                self.logger.log_error(f"stats : {traceback.format_exc()}")

    async def sweep_pending(self) -> None:
        while True:
            await asyncio.sleep(self.tagger.pending.ttl_ms / 1000)
            dropped = self.tagger.pending.sweep()
            if dropped:
                self.logger.log_access(f"Expired {dropped} unclaimed decision(s)")

    async def start(self) -> None:
        try:
            self.server = await asyncio.start_server(
                self.handle_connection,
                self.config.host,
                self.config.port,
                limit=BUF_SIZE,
            )
        except OSError:
            self.logger.error(
                f"\033[91m[ERROR]: Failed to start bridge on this address ({self.config.host}:{self.config.port}). It looks like the port is already in use\033[0m"
            )
            raise SystemExit(1)

        try:
            for s in self.server.sockets or []:
                s.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        except Exception:
            pass

        if not self.config.quiet:
            self.tasks.append(asyncio.create_task(self.display_stats()))
        if self.config.stats_file:
            self.tasks.append(asyncio.create_task(self.write_stats()))
        self.tasks.append(asyncio.create_task(self.sweep_pending()))

    async def run(self) -> None:
        if not self.config.quiet:
            await self.print_banner()
        await self.start()
        await self.server.serve_forever()

    async def shutdown(self) -> None:
        if self.server:
            self.server.close()
            for writer in list(self.writers):
                writer.close()
            await self.server.wait_closed()
        for task in self.tasks:
            task.cancel()
        scheduler = self.tagger.scheduler
        if hasattr(scheduler, "cancel_all"):
            scheduler.cancel_all()
