"""Session lifecycle and control surface on top of the room transport."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .events import CHANNELS, parse_event
from .identity import room_id_from_address
from .store import CLEARABLE_CHANNELS, SnapshotStore
from .transport import RoomTransport, TransportConfig, TransportError


logger = logging.getLogger(__name__)

TransportFactory = Callable[[TransportConfig], RoomTransport]


@dataclass
class SessionConfig:
    host: str = "127.0.0.1"
    port: int = 6752
    user_id: str = "Debugger"
    auto_connect: bool = True


class SessionManager:
    """Owns the single active debug session feeding a ``SnapshotStore``."""

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        *,
        session_config: Optional[SessionConfig] = None,
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        self.store = store if store is not None else SnapshotStore()
        self.session_config = session_config or SessionConfig()
        self.transport_factory: TransportFactory = transport_factory or RoomTransport
        self.transport: Optional[RoomTransport] = None
        self.room_id: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def active(self) -> bool:
        return self.transport is not None

    def init_session(self, address: Optional[str], secret: Optional[str] = "") -> bool:
        """Join the room named by ``address``.

        Returns False without side effects when the address is empty, yields
        no room id, or a session is already running.
        """

        room_id = room_id_from_address(address)
        if not room_id:
            logger.debug("init_session ignored: no room id in %r", address)
            return False
        with self._lock:
            if self.transport is not None:
                logger.debug("init_session ignored: session for room %s already active", self.room_id)
                return False
            config = TransportConfig(
                host=self.session_config.host,
                port=self.session_config.port,
                room_id=room_id,
                secret=secret or "",
                user_id=self.session_config.user_id,
            )
            transport = self.transport_factory(config)
            for channel in CHANNELS:
                transport.add_listener(channel, self._channel_handler(channel))
            transport.register_on_disconnect(self._disconnect_handler(transport))
            self.transport = transport
            self.room_id = room_id
        if self.session_config.auto_connect:
            try:
                transport.connect()
            except TransportError:
                with self._lock:
                    self.transport = None
                    self.room_id = None
                raise
        logger.info("joined debug room %s", room_id)
        return True

    def close(self) -> None:
        with self._lock:
            transport = self.transport
            self.transport = None
            self.room_id = None
        if transport is None:
            return
        self._end_session(transport)

    # ------------------------------------------------------------------
    # Control surface
    # ------------------------------------------------------------------
    def clear_history(self, channel: str) -> bool:
        if not self.active:
            return False
        if channel not in CLEARABLE_CHANNELS:
            logger.debug("clear_history ignored for channel %s", channel)
            return False
        return self.store.clear(channel)

    def request_refresh(self, channel: str) -> bool:
        """Ask the target to resend its state for ``channel``."""
        transport = self.transport
        if transport is None:
            return False
        try:
            transport.send_to_target({"type": "refresh", "data": channel})
        except TransportError as exc:
            logger.warning("refresh of %s not sent: %s", channel, exc)
            return False
        return True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _end_session(self, transport: RoomTransport) -> None:
        try:
            transport.close()
        finally:
            self.store.reset()

    def _disconnect_handler(self, transport: RoomTransport) -> Callable[[str], None]:
        def handle(state: str) -> None:
            with self._lock:
                if self.transport is not transport:
                    return
                room_id = self.room_id
                self.transport = None
                self.room_id = None
            logger.warning("debug room %s disconnected, session ended", room_id)
            self._end_session(transport)

        return handle

    def _channel_handler(self, channel: str) -> Callable[[Any], None]:
        def handle(data: Any) -> None:
            try:
                event = parse_event(channel, data)
            except ValueError as exc:
                logger.warning("dropping malformed %s event: %s", channel, exc)
                return
            self.store.apply(event)

        return handle
