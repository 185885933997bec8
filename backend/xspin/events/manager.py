import asyncio
from collections import defaultdict, deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Deque, Dict, Set

from fastapi import WebSocket

HISTORY_LIMIT = 500


@dataclass(frozen=True)
class GameEvent:
    seq: int
    type: str
    channel: str
    payload: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def as_message(self) -> dict[str, Any]:
        return {
            "seq": self.seq,
            "type": self.type,
            "channel": self.channel,
            "timestamp": self.timestamp.isoformat(),
            **self.payload,
        }


class EventStream:
    """Totally ordered push events for one room or tournament.

    ``publish`` is synchronous so timer callbacks can call it directly; each
    subscriber gets its own queue and sees events in ``seq`` order.
    """

    def __init__(self, channel: str, *, history_limit: int = HISTORY_LIMIT) -> None:
        self.channel = channel
        self._seq = 0
        self.history: Deque[GameEvent] = deque(maxlen=history_limit)
        self._subscribers: Set[asyncio.Queue] = set()

    def publish(self, event_type: str, **payload: Any) -> GameEvent:
        self._seq += 1
        event = GameEvent(seq=self._seq, type=event_type, channel=self.channel, payload=payload)
        self.history.append(event)
        for queue in self._subscribers:
            queue.put_nowait(event)
        return event

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def of_type(self, event_type: str) -> list[GameEvent]:
        return [event for event in self.history if event.type == event_type]

    @property
    def last_seq(self) -> int:
        return self._seq


class ConnectionManager:
    def __init__(self) -> None:
        self.streams: Dict[str, EventStream] = {}
        self.room_connections: Dict[str, Dict[WebSocket, asyncio.Queue]] = defaultdict(dict)

    def stream(self, channel: str) -> EventStream:
        if channel not in self.streams:
            self.streams[channel] = EventStream(channel)
        return self.streams[channel]

    def drop_stream(self, channel: str) -> None:
        self.streams.pop(channel, None)

    async def connect_room(self, channel: str, websocket: WebSocket) -> asyncio.Queue:
        await websocket.accept()
        queue = self.stream(channel).subscribe()
        self.room_connections[channel][websocket] = queue
        return queue

    def disconnect_room(self, channel: str, websocket: WebSocket) -> None:
        connections = self.room_connections.get(channel)
        if connections is None:
            return
        queue = connections.pop(websocket, None)
        if queue is not None and channel in self.streams:
            self.streams[channel].unsubscribe(queue)
        if not connections:
            del self.room_connections[channel]

    async def pump(self, channel: str, websocket: WebSocket, queue: asyncio.Queue) -> None:
        while True:
            event: GameEvent = await queue.get()
            await websocket.send_json(event.as_message())

    @property
    def online_player_count(self) -> int:
        return sum(len(conns) for conns in self.room_connections.values())


manager = ConnectionManager()
