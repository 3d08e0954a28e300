"""
Realtime presence and room occupancy.

Two registries hold process-wide runtime state that is never persisted:

    PresenceRegistry      user_id -> {connection ids}
    RoomMembershipTracker room_id -> {connection ids}

"Online" and "in room" are derived from these sets, never stored as flags:
a user is online while their connection set is non-empty, and present in a
room while at least one of their connections is joined to it. Both
registries are rebuilt empty on process start.

RealtimeHub owns one instance of each, publishes the events they produce
through DeliveryFanout, and persists last-seen in the background. The hub is
created in ChatConfig.ready() and injected into ChatConsumer; tests build
their own isolated hubs.

Concurrency:
    Registry mutations are short, never await, and run under one re-entrant
    lock per registry. They are safe to call both from the event loop and
    from sync worker threads (REST views read occupants for read-by seeding).
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from channels.db import database_sync_to_async
from django.utils import timezone

from chat import events
from chat.events import EventName, PresenceStatus, RealtimeEvent

if TYPE_CHECKING:
    from chat.fanout import DeliveryFanout

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PresenceChange:
    """
    A user's transition between online and offline.

    last_seen is set only for offline transitions.
    """

    user_id: int
    online: bool
    last_seen: datetime | None = None

    def to_events(self) -> list[RealtimeEvent]:
        if self.online:
            return [
                RealtimeEvent.to_everyone(
                    EventName.USER_STATUS,
                    events.user_status(self.user_id, PresenceStatus.ONLINE),
                )
            ]
        return [
            RealtimeEvent.to_everyone(
                EventName.USER_STATUS,
                events.user_status(self.user_id, PresenceStatus.OFFLINE),
            ),
            RealtimeEvent.to_everyone(
                EventName.USER_LAST_SEEN,
                events.user_last_seen(self.user_id, self.last_seen),
            ),
        ]


class PresenceRegistry:
    """
    Multiplexes a user's connections into one online/offline signal.

    Usage:
        registry = PresenceRegistry()
        change = registry.connect(user.id, "conn-1")   # PresenceChange(online=True)
        registry.connect(user.id, "conn-2")            # None, already online
        registry.disconnect("conn-1")                  # None, conn-2 still live
        change = registry.disconnect("conn-2")         # PresenceChange(online=False, last_seen=...)
    """

    def __init__(self, clock: Callable[[], datetime] = timezone.now):
        self._clock = clock
        self._lock = threading.RLock()
        self._connections: dict[int, set[str]] = {}
        self._owner: dict[str, int] = {}

    def connect(self, user_id: int, connection_id: str) -> PresenceChange | None:
        """
        Register a live connection for a user.

        Returns:
            PresenceChange(online=True) if this is the user's first live
            connection, otherwise None
        """
        with self._lock:
            previous = self._owner.get(connection_id)
            if previous is not None and previous != user_id:
                # A connection id belongs to exactly one user
                self._remove(connection_id)

            conns = self._connections.setdefault(user_id, set())
            first = not conns
            conns.add(connection_id)
            self._owner[connection_id] = user_id

        if first:
            return PresenceChange(user_id=user_id, online=True)
        return None

    def disconnect(self, connection_id: str) -> PresenceChange | None:
        """
        Remove a connection from whichever user holds it.

        Returns:
            PresenceChange(online=False, last_seen=now) if it was the user's
            last live connection, otherwise None. Unknown connection ids
            (anonymous sockets, repeated disconnects) return None.
        """
        with self._lock:
            return self._remove(connection_id)

    def _remove(self, connection_id: str) -> PresenceChange | None:
        user_id = self._owner.pop(connection_id, None)
        if user_id is None:
            return None

        conns = self._connections.get(user_id)
        if conns is None:
            return None
        conns.discard(connection_id)
        if conns:
            return None

        del self._connections[user_id]
        return PresenceChange(user_id=user_id, online=False, last_seen=self._clock())

    def snapshot(self) -> set[int]:
        """Return the ids of every user with at least one live connection."""
        with self._lock:
            return set(self._connections)

    def is_online(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._connections

    def connections_of(self, user_id: int) -> set[str]:
        with self._lock:
            return set(self._connections.get(user_id, ()))

    def reset(self) -> None:
        with self._lock:
            self._connections.clear()
            self._owner.clear()


class RoomMembershipTracker:
    """
    Tracks which connections are currently viewing which rooms.

    Occupancy is per user: with two tabs open on the same room, the user is
    reported absent only after both have left.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._rooms: dict[int, set[str]] = {}
        self._conn_user: dict[str, int] = {}
        self._conn_rooms: dict[str, set[int]] = defaultdict(set)

    def join(self, room_id: int, connection_id: str, user_id: int) -> list[RealtimeEvent]:
        """
        Add a connection to a room.

        Returns:
            A userInRoom(inRoom=True) event for the rest of the room, followed
            by one point-to-point userInRoom event per other occupant so the
            joining socket learns who is already there.
        """
        with self._lock:
            self._conn_user[connection_id] = user_id
            members = self._rooms.setdefault(room_id, set())
            already_joined = connection_id in members
            others = self._occupants(room_id) - {user_id}
            members.add(connection_id)
            self._conn_rooms[connection_id].add(room_id)

        if already_joined:
            return []

        result = [
            RealtimeEvent.to_room(
                room_id,
                EventName.USER_IN_ROOM,
                events.user_in_room(room_id, user_id, True),
                exclude_channel=connection_id,
            )
        ]
        result.extend(
            RealtimeEvent.to_connection(
                connection_id,
                EventName.USER_IN_ROOM,
                events.user_in_room(room_id, other_id, True),
            )
            for other_id in sorted(others)
        )
        return result

    def leave(self, room_id: int, connection_id: str) -> list[RealtimeEvent]:
        """
        Remove a connection from a room.

        Returns:
            A userInRoom(inRoom=False) event if that was the user's last
            connection in the room, otherwise an empty list.
        """
        with self._lock:
            return self._leave(room_id, connection_id)

    def disconnect(self, connection_id: str) -> list[RealtimeEvent]:
        """Implicitly leave every room the connection had joined."""
        with self._lock:
            result = []
            for room_id in sorted(self._conn_rooms.get(connection_id, set()).copy()):
                result.extend(self._leave(room_id, connection_id))
            self._conn_rooms.pop(connection_id, None)
            self._conn_user.pop(connection_id, None)
            return result

    def _leave(self, room_id: int, connection_id: str) -> list[RealtimeEvent]:
        members = self._rooms.get(room_id)
        if not members or connection_id not in members:
            return []

        members.discard(connection_id)
        self._conn_rooms[connection_id].discard(room_id)
        user_id = self._conn_user[connection_id]
        still_present = user_id in self._occupants(room_id)
        if not members:
            del self._rooms[room_id]

        if still_present:
            return []
        return [
            RealtimeEvent.to_room(
                room_id,
                EventName.USER_IN_ROOM,
                events.user_in_room(room_id, user_id, False),
            )
        ]

    def _occupants(self, room_id: int) -> set[int]:
        return {self._conn_user[c] for c in self._rooms.get(room_id, ())}

    def occupants(self, room_id: int) -> set[int]:
        """Return the ids of users with at least one connection in the room."""
        with self._lock:
            return self._occupants(room_id)

    def rooms_of(self, connection_id: str) -> set[int]:
        with self._lock:
            return set(self._conn_rooms.get(connection_id, ()))

    def is_joined(self, room_id: int, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._rooms.get(room_id, ())

    def reset(self) -> None:
        with self._lock:
            self._rooms.clear()
            self._conn_user.clear()
            self._conn_rooms.clear()


class RealtimeHub:
    """
    Process-wide realtime state with an explicit lifecycle.

    Owns the PresenceRegistry and RoomMembershipTracker, publishes the events
    they produce, and serializes message persistence-plus-broadcast per room.

    Args:
        fanout: Delivery target for events (defaults to the channel layer)
        clock: Source of "now" for last-seen timestamps
        last_seen_writer: Sync callable (user_id, when) persisting last-seen;
            defaults to UserService.record_last_seen
    """

    def __init__(
        self,
        fanout: DeliveryFanout | None = None,
        clock: Callable[[], datetime] = timezone.now,
        last_seen_writer: Callable[[int, datetime], object] | None = None,
    ):
        if fanout is None:
            from chat.fanout import DeliveryFanout

            fanout = DeliveryFanout()
        if last_seen_writer is None:
            from authentication.services import UserService

            last_seen_writer = UserService.record_last_seen

        self.fanout = fanout
        self.presence = PresenceRegistry(clock=clock)
        self.rooms = RoomMembershipTracker()
        self._last_seen_writer = last_seen_writer
        self._room_locks: dict[int, threading.Lock] = defaultdict(threading.Lock)
        self._room_locks_guard = threading.Lock()
        self._background: set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Drop all runtime state (process restart, test isolation)."""
        self.presence.reset()
        self.rooms.reset()
        with self._room_locks_guard:
            self._room_locks.clear()
        for task in list(self._background):
            task.cancel()
        self._background.clear()

    async def drain(self) -> None:
        """Wait for background work (last-seen writes) to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    def room_lock(self, room_id: int) -> threading.Lock:
        """
        Lock serializing "persist then broadcast" for one room.

        Held across the message insert and its chatMessage publish so room
        members observe creations in persistence order.
        """
        with self._room_locks_guard:
            return self._room_locks[room_id]

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    async def connect(self, channel_name: str, user_id: int | None) -> None:
        """
        Register a socket and greet it with the current online users.

        Anonymous sockets are greeted but not registered.
        """
        if user_id is not None:
            change = self.presence.connect(user_id, channel_name)
            if change is not None:
                logger.info(f"User {user_id} is online")
                await self.fanout.publish_many(change.to_events())

        await self.fanout.publish(
            RealtimeEvent.to_connection(
                channel_name,
                EventName.INITIAL_ONLINE_USERS,
                {"userIds": sorted(self.presence.snapshot())},
            )
        )

    async def disconnect(self, channel_name: str) -> None:
        """
        Forget a socket: leave its rooms, then drop it from presence.

        When it was the user's last socket, last-seen is written in the
        background and never raises into this path.
        """
        await self.fanout.publish_many(self.rooms.disconnect(channel_name))

        change = self.presence.disconnect(channel_name)
        if change is None:
            return

        logger.info(f"User {change.user_id} is offline")
        self._spawn(self._persist_last_seen(change.user_id, change.last_seen))
        await self.fanout.publish_many(change.to_events())

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    async def join(self, room_id: int, channel_name: str, user_id: int) -> None:
        await self.fanout.publish_many(self.rooms.join(room_id, channel_name, user_id))
        logger.info(f"User {user_id} joined room {room_id}")

    async def leave(self, room_id: int, channel_name: str) -> None:
        await self.fanout.publish_many(self.rooms.leave(room_id, channel_name))

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _persist_last_seen(self, user_id: int, when: datetime) -> None:
        try:
            await database_sync_to_async(self._last_seen_writer)(user_id, when)
        except Exception:
            logger.exception(f"Failed to persist last seen for user {user_id}")


def get_hub() -> RealtimeHub:
    """The process hub created by ChatConfig.ready()."""
    from django.apps import apps

    return apps.get_app_config("chat").hub
