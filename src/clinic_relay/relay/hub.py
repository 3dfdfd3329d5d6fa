"""Live connection registry and per-phone pending queue.

All state lives on a RelayHub instance owned by the application (app.state.hub).
Every method is synchronous and runs on the event loop, which serializes all
mutation. A multi-threaded host must guard the hub with a lock.
"""

from collections import deque
from dataclasses import dataclass
from typing import Any, Protocol

from clinic_relay.observability.logging import get_logger
from clinic_relay.observability.redaction import hash_identifier, safe_log_context

from .events import RelayEvent
from .phone import to_e164

logger = get_logger(__name__)


class ConnectionHandle(Protocol):
    """One live duplex transport session."""

    @property
    def is_open(self) -> bool: ...

    def send(self, payload: dict[str, Any]) -> None:
        """Queue payload for delivery. Raises if the transport is gone."""
        ...

    def close(self) -> None: ...


@dataclass(frozen=True)
class Bound:
    """Phone had no handle, or the same handle registered again."""

    phone: str


@dataclass(frozen=True)
class Rebound:
    """Phone was bound to another handle, which has been closed and discarded."""

    phone: str
    previous: ConnectionHandle


@dataclass(frozen=True)
class Unbound:
    """Handle removed from the registry."""

    phone: str


class RelayHub:
    """Connection registry plus pending queue, keyed by E.164 phone."""

    def __init__(self) -> None:
        self._connections: dict[str, ConnectionHandle] = {}
        # Reverse index: transports do not carry their phone key
        self._phones: dict[int, str] = {}
        self._pending: dict[str, deque[RelayEvent]] = {}

    def register(self, phone: str, connection: ConnectionHandle) -> Bound | Rebound:
        """Bind connection to phone and flush that phone's pending queue.

        Raises:
            InvalidPhoneFormat: If phone does not normalize.
        """
        key = to_e164(phone)

        # A handle lives under one phone at a time
        old_key = self._phones.get(id(connection))
        if old_key is not None and old_key != key:
            self._connections.pop(old_key, None)

        previous = self._connections.get(key)
        self._connections[key] = connection
        self._phones[id(connection)] = key

        binding: Bound | Rebound
        if previous is not None and previous is not connection:
            self._phones.pop(id(previous), None)
            previous.close()
            binding = Rebound(phone=key, previous=previous)
            logger.info(
                "live connection replaced",
                extra={"extra_fields": safe_log_context(phone_hash=hash_identifier(key))},
            )
        else:
            binding = Bound(phone=key)
            logger.info(
                "live connection registered",
                extra={"extra_fields": safe_log_context(phone_hash=hash_identifier(key))},
            )

        self._drain(key, connection)
        return binding

    def dispatch(self, phone: str, event: RelayEvent) -> bool:
        """Deliver event live, or queue it for the phone's next registration.

        Returns:
            True if sent to an open connection, False if queued.

        Raises:
            InvalidPhoneFormat: If phone does not normalize.
        """
        key = to_e164(phone)
        connection = self._connections.get(key)

        if connection is not None and connection.is_open:
            try:
                connection.send(event.to_dict())
                return True
            except Exception:
                logger.warning(
                    "live send failed, queueing event",
                    exc_info=True,
                    extra={"extra_fields": safe_log_context(phone_hash=hash_identifier(key))},
                )

        self._pending.setdefault(key, deque()).append(event)
        logger.info(
            "event queued for offline phone",
            extra={
                "extra_fields": safe_log_context(
                    phone_hash=hash_identifier(key),
                    queued=len(self._pending[key]),
                )
            },
        )
        return False

    def unregister(self, connection: ConnectionHandle) -> Unbound | None:
        """Drop the binding that points at connection, if any."""
        key = self._phones.pop(id(connection), None)
        if key is None:
            return None
        if self._connections.get(key) is connection:
            del self._connections[key]
        logger.info(
            "live connection unregistered",
            extra={"extra_fields": safe_log_context(phone_hash=hash_identifier(key))},
        )
        return Unbound(phone=key)

    def connection_for(self, phone: str) -> ConnectionHandle | None:
        return self._connections.get(to_e164(phone))

    def pending(self, phone: str) -> list[RelayEvent]:
        """Snapshot of the phone's pending queue, oldest first."""
        return list(self._pending.get(to_e164(phone), ()))

    def stats(self) -> dict[str, int]:
        return {
            "connections": len(self._connections),
            "pendingPhones": len(self._pending),
            "pendingEvents": sum(len(q) for q in self._pending.values()),
        }

    def _drain(self, key: str, connection: ConnectionHandle) -> None:
        # On the first failed send, the failed event and everything after it go
        # back to the head of the queue in order, and draining stops.
        queue = self._pending.pop(key, None)
        if not queue:
            return

        delivered = 0
        while queue:
            event = queue[0]
            try:
                connection.send(event.to_dict())
            except Exception:
                logger.warning(
                    "drain interrupted, requeueing remaining events",
                    exc_info=True,
                    extra={
                        "extra_fields": safe_log_context(
                            phone_hash=hash_identifier(key),
                            delivered=delivered,
                            remaining=len(queue),
                        )
                    },
                )
                # Events dispatched during the failed send keep their place after ours
                queue.extend(self._pending.pop(key, ()))
                self._pending[key] = queue
                return
            queue.popleft()
            delivered += 1

        logger.info(
            "pending events flushed",
            extra={
                "extra_fields": safe_log_context(
                    phone_hash=hash_identifier(key),
                    delivered=delivered,
                )
            },
        )
