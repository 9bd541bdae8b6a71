"""
Room transport for spydbg.

Responsibilities:
    * Join a debug room on the relay (room id + secret) over JSON-lines TCP.
    * Dispatch inbound ``{"type": <channel>, "data": ...}`` frames to the
      listeners registered for that channel.
    * Send unicast control messages to the debugged target.
    * Surface connection state changes to callers.
"""

from __future__ import annotations

import json
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional


logger = logging.getLogger(__name__)

ChannelHandler = Callable[[Any], None]


class TransportError(RuntimeError):
    """Raised when the transport cannot complete an operation."""


@dataclass
class TransportConfig:
    host: str = "127.0.0.1"
    port: int = 6752
    room_id: str = ""
    secret: str = ""
    user_id: str = "Debugger"
    connect_timeout: float = 2.0
    reconnect_backoff: float = 0.5
    max_backoff: float = 5.0
    max_retries: int = 5


@dataclass
class RoomTransport:
    """Persistent connection to one debug room."""

    config: TransportConfig = field(default_factory=TransportConfig)

    _sock: Optional[socket.socket] = field(init=False, default=None)
    _send_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _connect_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _state_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _listener_lock: threading.Lock = field(init=False, default_factory=threading.Lock)
    _state: str = field(init=False, default="disconnected")
    _shutdown: bool = field(init=False, default=False)
    _reader_thread: Optional[threading.Thread] = field(init=False, default=None)
    _listeners: Dict[str, List[ChannelHandler]] = field(init=False, default_factory=dict)
    _on_connect: List[Callable[[str], None]] = field(init=False, default_factory=list)
    _on_disconnect: List[Callable[[str], None]] = field(init=False, default_factory=list)

    #
    # Connection lifecycle helpers
    #
    @property
    def state(self) -> str:
        with self._state_lock:
            return self._state

    def register_on_connect(self, callback: Callable[[str], None]) -> None:
        self._on_connect.append(callback)

    def register_on_disconnect(self, callback: Callable[[str], None]) -> None:
        self._on_disconnect.append(callback)

    def add_listener(self, channel: str, handler: ChannelHandler) -> None:
        with self._listener_lock:
            self._listeners.setdefault(channel, []).append(handler)

    def remove_listener(self, channel: str, handler: ChannelHandler) -> None:
        with self._listener_lock:
            handlers = self._listeners.get(channel)
            if handlers and handler in handlers:
                handlers.remove(handler)

    def connect(self, *, retry: bool = True) -> None:
        """Open the relay connection and join the configured room."""
        with self._connect_lock:
            if self._sock:
                return
            if self._shutdown:
                raise TransportError("transport closed")
            if not self.config.room_id:
                raise TransportError("room id required")
            self._set_state("connecting")
            try:
                sock = self._connect_with_backoff(retry=retry)
                self._join(sock)
            except TransportError:
                self._set_state("disconnected")
                raise
            self._sock = sock
            self._reader_thread = threading.Thread(target=self._reader_loop, name="spydbg-room", daemon=True)
            self._reader_thread.start()
            self._set_state("connected")

    def close(self) -> None:
        self._shutdown = True
        self._handle_disconnect()
        thread = self._reader_thread
        if thread and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=0.5)
        self._reader_thread = None

    def send_to_target(self, message: Dict[str, Any]) -> None:
        """Unicast a control message (e.g. ``{"type": "refresh"}``) to the target."""
        self._send_frame({"type": "unicast", "data": dict(message)})

    #
    # Internal helpers
    #
    def _connect_with_backoff(self, *, retry: bool) -> socket.socket:
        attempt = 0
        backoff = self.config.reconnect_backoff
        last_error: Optional[OSError] = None
        while not self._shutdown:
            attempt += 1
            try:
                return socket.create_connection(
                    (self.config.host, self.config.port),
                    timeout=self.config.connect_timeout,
                )
            except OSError as exc:
                last_error = exc
                if not retry:
                    break
                if self.config.max_retries > 0 and attempt >= self.config.max_retries:
                    break
                logger.debug("relay connect attempt %d failed: %s", attempt, exc)
                time.sleep(backoff)
                backoff = min(backoff * 2, self.config.max_backoff)
        if last_error is None:
            raise TransportError("connect failed: transport closed")
        raise TransportError(f"connect failed: {last_error}") from last_error

    def _join(self, sock: socket.socket) -> None:
        frame = {
            "type": "join",
            "address": self.config.room_id,
            "userId": self.config.user_id,
            "secret": self.config.secret,
        }
        try:
            sock.sendall(self._encode(frame))
            # Frames arrive whenever the target emits; no read deadline.
            sock.settimeout(None)
        except OSError as exc:
            sock.close()
            raise TransportError(f"join failed: {exc}") from exc

    @staticmethod
    def _encode(frame: Dict[str, Any]) -> bytes:
        return json.dumps(frame, separators=(",", ":")).encode("utf-8") + b"\n"

    def _send_frame(self, frame: Dict[str, Any]) -> None:
        sock = self._sock
        if sock is None:
            raise TransportError("not connected")
        try:
            with self._send_lock:
                sock.sendall(self._encode(frame))
        except OSError as exc:
            self._handle_disconnect()
            raise TransportError(f"send failed: {exc}") from exc

    def _reader_loop(self) -> None:
        buffer = b""
        while not self._shutdown:
            sock = self._sock
            if not sock:
                break
            try:
                chunk = sock.recv(4096)
            except OSError:
                break
            if not chunk:
                break
            buffer += chunk
            while b"\n" in buffer:
                line, buffer = buffer.split(b"\n", 1)
                if not line:
                    continue
                try:
                    message = json.loads(line.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError):
                    logger.debug("dropping undecodable frame (%d bytes)", len(line))
                    continue
                if isinstance(message, dict):
                    self._dispatch(message)
        self._handle_disconnect()

    def _dispatch(self, message: Dict[str, Any]) -> None:
        channel = message.get("type")
        if not isinstance(channel, str):
            return
        with self._listener_lock:
            handlers = list(self._listeners.get(channel, ()))
        for handler in handlers:
            try:
                handler(message.get("data"))
            except Exception:
                # Listener failures should not disrupt the transport.
                logger.exception("listener for %s failed", channel)

    def _handle_disconnect(self) -> None:
        sock = self._sock
        self._sock = None
        if sock:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            try:
                sock.close()
            except OSError:
                pass
        self._set_state("disconnected")

    def _set_state(self, new_state: str) -> None:
        with self._state_lock:
            if self._state == new_state:
                return
            self._state = new_state
        callbacks: List[Callable[[str], None]]
        if new_state == "connected":
            callbacks = list(self._on_connect)
        elif new_state == "disconnected":
            callbacks = list(self._on_disconnect)
        else:
            callbacks = []
        for callback in callbacks:
            try:
                callback(new_state)
            except Exception:
                logger.debug("state callback failed", exc_info=True)
