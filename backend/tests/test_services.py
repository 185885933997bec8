import asyncio
import random
import unittest
from datetime import datetime, timedelta
from types import SimpleNamespace

from helpers import ManualLoop, SequenceWheel, quiet_settings
from xspin.enums import CloseReason, Phase, RoomMode, TournamentStage, UserRank
from xspin.events.manager import ConnectionManager, EventStream
from xspin.game.exceptions import CommentaryUnavailable, RankTooLow, RoomNotFound
from xspin.game.players import Profile
from xspin.services.commentary import (
    NO_WINNER_LINE,
    OpenAICommentaryService,
    StaticCommentaryService,
    fallback_commentary,
)
from xspin.services.lobby import SessionRegistry


class _Completions:
    def __init__(self, content: str | None = None, delay: float = 0.0) -> None:
        self.content = content
        self.delay = delay
        self.calls = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.delay:
            await asyncio.sleep(self.delay)
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(completions: _Completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


class CommentaryServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_missing_key_is_unavailable(self) -> None:
        service = OpenAICommentaryService(quiet_settings(openai_api_key=None))
        with self.assertRaises(CommentaryUnavailable):
            await service.request_commentary("Ace", 1500, 15)

    async def test_returns_trimmed_model_line(self) -> None:
        completions = _Completions("  Ace just robbed the house!  ")
        service = OpenAICommentaryService(quiet_settings(openai_api_key="sk-test"), client=_client(completions))

        line = await service.request_commentary("Ace", 1500, 15)

        self.assertEqual(line, "Ace just robbed the house!")
        prompt = completions.calls[0]["messages"][1]["content"]
        self.assertIn("Ace", prompt)
        self.assertIn("$1500", prompt)

    async def test_empty_and_slow_responses_are_unavailable(self) -> None:
        settings = quiet_settings(openai_api_key="sk-test", commentary_timeout_seconds=0.01)
        with self.assertRaises(CommentaryUnavailable):
            await OpenAICommentaryService(settings, client=_client(_Completions(""))).request_commentary("Ace", 1, 2)
        with self.assertRaises(CommentaryUnavailable):
            await OpenAICommentaryService(settings, client=_client(_Completions("late", delay=1))).request_commentary(
                "Ace", 1, 2
            )

    async def test_static_service_names_the_winner(self) -> None:
        line = await StaticCommentaryService().request_commentary("Ace", 300, 15)
        self.assertIn("Ace", line)
        self.assertEqual(fallback_commentary(None, 0), NO_WINNER_LINE)


class EventStreamTests(unittest.IsolatedAsyncioTestCase):
    async def test_subscribers_receive_events_in_order(self) -> None:
        stream = EventStream("room", history_limit=3)
        queue = stream.subscribe()
        for index in range(5):
            stream.publish("timer", seconds=index)

        received = [queue.get_nowait() for _ in range(5)]
        self.assertEqual([event.seq for event in received], [1, 2, 3, 4, 5])
        self.assertEqual([event.seq for event in stream.history], [3, 4, 5])
        self.assertEqual(received[0].as_message()["seconds"], 0)

        stream.unsubscribe(queue)
        stream.publish("timer", seconds=9)
        self.assertTrue(queue.empty())
        self.assertEqual(stream.last_seq, 6)


class SessionRegistryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.loop = ManualLoop()
        self.connections = ConnectionManager()
        self.sessions = SessionRegistry(
            settings=quiet_settings(),
            connections=self.connections,
            commentary=StaticCommentaryService(),
            loop=self.loop,
            generator_factory=lambda: SequenceWheel([0]),
            rng=random.Random(1),
        )
        self.rookie = Profile(id="rookie", username="Rookie")
        self.master = Profile(id="master", username="Master", rank=UserRank.MASTER, rank_xp=10)

    def test_new_players_get_starting_balance(self) -> None:
        self.sessions.register_player(self.rookie)
        self.assertEqual(self.sessions.balances.balance_of("rookie"), 1000)

    def test_custom_rooms_need_master_rank(self) -> None:
        with self.assertRaises(RankTooLow):
            self.sessions.create_room(self.rookie, RoomMode.CUSTOM)
        room = self.sessions.create_room(self.master, RoomMode.CUSTOM, name="High Rollers", min_bet=100)
        self.assertEqual(room.name, "High Rollers")
        self.assertEqual(room.ledger.min_bet, 100)

    def test_closed_rooms_are_forgotten(self) -> None:
        room = self.sessions.create_room(self.rookie, RoomMode.BLITZ)
        self.assertIs(self.sessions.get_room(room.room_id), room)
        self.assertIs(self.connections.stream(room.room_id), room.events)

        room.leave()
        with self.assertRaises(RoomNotFound):
            self.sessions.get_room(room.room_id)

    def test_idle_cleanup_closes_waiting_rooms_only(self) -> None:
        waiting = self.sessions.create_room(self.rookie, RoomMode.BLITZ)
        busy = self.sessions.create_room(self.rookie, RoomMode.DUEL)
        busy.place_bet("rookie", 50)
        busy.ready()

        deleted = self.sessions.delete_idle_rooms(cutoff=datetime.utcnow() + timedelta(minutes=1))

        self.assertEqual(deleted, 1)
        self.assertEqual(waiting.phase, Phase.CLOSED)
        self.assertEqual(waiting.events.of_type("room_closed")[0].payload["reason"], CloseReason.IDLE_CLEANUP.value)
        self.assertIs(self.sessions.get_room(busy.room_id), busy)

    def test_closed_rooms_release_their_streams(self) -> None:
        for _ in range(5):
            room = self.sessions.create_room(self.rookie, RoomMode.BLITZ)
            self.assertIn(room.room_id, self.connections.streams)
            room.leave()
            self.assertNotIn(room.room_id, self.connections.streams)

        tournament = self.sessions.enter_tournament(self.rookie)
        tournament.leave()
        self.assertEqual(self.sessions.rooms, {})
        self.assertEqual(self.sessions.tournaments, {})
        self.assertEqual(self.connections.streams, {})

    def test_idle_cleanup_closes_abandoned_spins(self) -> None:
        room = self.sessions.create_room(self.rookie, RoomMode.BLITZ)
        room.place_bet("rookie", 50)
        room.ready()
        room.confirm_bet("rookie")
        self.loop.advance(18)
        self.assertEqual(room.phase, Phase.SPINNING)

        tournament = self.sessions.enter_tournament(self.master)
        self.loop.advance(13)
        self.assertEqual(tournament.stage, TournamentStage.GROUP_SPIN)

        deleted = self.sessions.delete_idle_rooms(cutoff=datetime.utcnow() + timedelta(days=365))

        self.assertEqual(deleted, 2)
        self.assertEqual(room.phase, Phase.CLOSED)
        self.assertEqual(tournament.stage, TournamentStage.CLOSED)
        self.assertEqual(self.sessions.balances.balance_of("rookie"), 950)
        self.assertEqual(self.sessions.rooms, {})
        self.assertEqual(self.connections.streams, {})

    def test_rank_persists_across_tournaments(self) -> None:
        tracker = self.sessions.rank_tracker(self.rookie)
        tracker.record_win()
        tournament = self.sessions.enter_tournament(self.rookie)

        self.assertIs(tournament.rank_tracker, tracker)
        self.assertEqual(tournament.stage, TournamentStage.BRACKET_VIEW)
        self.assertEqual(self.sessions.current_profile(self.rookie).rank_xp, 1)
        self.assertIs(self.sessions.get_tournament(tournament.tournament_id), tournament)
