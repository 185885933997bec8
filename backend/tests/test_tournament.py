import random
import unittest

from helpers import ManualLoop, SequenceWheel, quiet_settings
from xspin.enums import PlayerStatus, TournamentStage, UserRank
from xspin.events.manager import EventStream
from xspin.game.exceptions import InsufficientFunds, InvalidPhase
from xspin.game.ledger import InMemoryBalanceStore
from xspin.game.players import BotPlayer, Profile
from xspin.game.ranks import RankTracker
from xspin.game.tournament import TournamentCoordinator

PROFILE = Profile(id="me", username="Ace")
GROUP_STAGE_SECONDS = 13
FINAL_LEAD_SECONDS = 17


class TournamentTests(unittest.TestCase):
    def make_tournament(self, outcomes=(0,), tracker=None, **overrides) -> TournamentCoordinator:
        self.loop = ManualLoop()
        self.balances = InMemoryBalanceStore(default_balance=1000)
        self.events = EventStream("GP-TEST")
        self.wheel = SequenceWheel(list(outcomes))
        self.tracker = tracker or RankTracker()
        return TournamentCoordinator(
            "GP-TEST",
            PROFILE,
            balances=self.balances,
            events=self.events,
            rank_tracker=self.tracker,
            settings=quiet_settings(**overrides),
            loop=self.loop,
            generator=self.wheel,
            rng=random.Random(11),
        )

    def test_bracket_layout(self) -> None:
        tournament = self.make_tournament()
        self.assertEqual(len(tournament.state.groups), 10)
        for group in tournament.state.groups:
            colors = [player.assigned_color for player in group.seating]
            self.assertEqual(len(colors), 10)
            self.assertEqual(len(set(colors)), 10)
        human_groups = [group for group in tournament.state.groups if group.seating.get("me")]
        self.assertEqual(human_groups, [tournament.human_group])

    def test_entry_collects_fees(self) -> None:
        tournament = self.make_tournament()
        tournament.enter()

        self.assertEqual(self.balances.balance_of("me"), 990)
        self.assertEqual(tournament.human.status, PlayerStatus.CONFIRMED)
        self.assertEqual(tournament.snapshot()["total_pot"], 1000)
        self.assertEqual(tournament.stage, TournamentStage.BRACKET_VIEW)
        with self.assertRaises(InvalidPhase):
            tournament.enter()

    def test_entry_without_funds_is_rejected(self) -> None:
        tournament = self.make_tournament()
        self.balances.apply_delta("me", -995)
        with self.assertRaises(InsufficientFunds):
            tournament.enter()
        self.assertEqual(self.balances.balance_of("me"), 5)
        self.assertEqual(tournament.stage, TournamentStage.ENTRY)

    def test_all_groups_commit_in_one_callback(self) -> None:
        tournament = self.make_tournament()
        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS - 1)
        self.assertEqual(tournament.stage, TournamentStage.GROUP_COUNTDOWN)
        self.assertTrue(all(group.state.target_index is None for group in tournament.state.groups))

        self.loop.advance(1)
        self.assertEqual(tournament.stage, TournamentStage.GROUP_SPIN)
        self.assertTrue(all(group.state.target_index == 0 for group in tournament.state.groups))
        self.assertEqual(len(self.events.of_type("spin_started")), 1)

    def test_seven_groups_produce_seven_finalists(self) -> None:
        tournament = self.make_tournament(outcomes=[0])
        silent = [group for group in tournament.state.groups if group is not tournament.human_group][:3]
        for group in silent:
            holder = group.seating.holder_of("red")
            self.assertIsInstance(holder, BotPlayer)
            holder.confirm_probability = 0.0

        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS)
        self.assertTrue(tournament.spin_ended())
        self.assertFalse(tournament.spin_ended())

        winners = tournament.group_winners
        self.assertEqual(len(winners), 7)
        for winner in winners:
            self.assertEqual(winner.assigned_color, "red")
            self.assertEqual(winner.status, PlayerStatus.CONFIRMED)
        for group in silent:
            self.assertIsNone(group.winner)

        frozen = tournament.group_winners
        self.loop.advance(FINAL_LEAD_SECONDS)
        self.assertIs(tournament.group_winners, frozen)
        self.assertEqual(len(tournament.state.finalists), 7)
        self.assertEqual(len({finalist.assigned_color for finalist in tournament.state.finalists}), 7)

    def test_final_credits_aggregate_pot_once(self) -> None:
        tournament = self.make_tournament(outcomes=[0] * 10 + [3])
        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS)
        tournament.spin_ended()
        self.assertEqual(len(tournament.group_winners), 10)

        self.loop.advance(FINAL_LEAD_SECONDS)
        self.assertEqual(tournament.stage, TournamentStage.FINAL_SPIN)
        self.assertEqual(tournament.final_state.target_index, 3)

        finalists = tournament.state.finalists
        before = {finalist.id: self.balances.balance_of(finalist.id) for finalist in finalists}
        self.assertTrue(tournament.spin_ended())
        self.assertFalse(tournament.spin_ended())

        champion = finalists[3]
        self.assertEqual(champion.assigned_color, "lime")
        self.assertIs(tournament.grand_winner, champion)
        self.assertEqual(self.balances.balance_of(champion.id), before[champion.id] + 1000)
        for finalist in finalists:
            if finalist is not champion:
                self.assertEqual(self.balances.balance_of(finalist.id), before[finalist.id])
        self.assertEqual(len(self.events.of_type("grand_winner")), 1)
        self.assertEqual(tournament.stage, TournamentStage.FINAL_RESULT)

    def test_late_group_signal_does_not_end_final(self) -> None:
        tournament = self.make_tournament(outcomes=[0] * 10 + [3])
        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS)
        self.assertFalse(tournament.spin_ended("final"))
        self.assertTrue(tournament.spin_ended("groups"))
        self.loop.advance(FINAL_LEAD_SECONDS)
        self.assertEqual(tournament.stage, TournamentStage.FINAL_SPIN)

        self.assertFalse(tournament.spin_ended("groups"))
        self.assertEqual(tournament.stage, TournamentStage.FINAL_SPIN)
        self.assertIsNone(tournament.grand_winner)
        self.assertEqual(self.events.of_type("grand_winner"), [])

        self.assertTrue(tournament.spin_ended("final"))
        self.assertIs(tournament.grand_winner, tournament.state.finalists[3])

    def test_losing_human_is_eliminated_but_bracket_continues(self) -> None:
        tournament = self.make_tournament()
        losing = next(
            index for index, segment in enumerate(tournament.group_segments)
            if segment.color != tournament.human.assigned_color
        )
        self.wheel.outcomes = [losing]
        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS)
        tournament.spin_ended()

        self.assertFalse(tournament.human_advanced)
        self.loop.advance(8)
        self.assertEqual(self.events.of_type("eliminated"), [])
        self.loop.advance(1)
        self.assertTrue(tournament.eliminated)
        self.assertEqual(len(self.events.of_type("eliminated")), 1)
        self.assertEqual(tournament.stage, TournamentStage.FINAL_COLOR)

    def test_no_finalists_returns_entry_fees(self) -> None:
        tournament = self.make_tournament(tournament_bot_entry_probability=0.0)
        losing = next(
            index for index, segment in enumerate(tournament.group_segments)
            if segment.color != tournament.human.assigned_color
        )
        self.wheel.outcomes = [losing]
        tournament.enter()
        self.assertEqual(tournament.snapshot()["total_pot"], 10)
        self.loop.advance(GROUP_STAGE_SECONDS)
        tournament.spin_ended()
        self.loop.advance(9)

        self.assertEqual(tournament.group_winners, ())
        self.assertIsNone(tournament.grand_winner)
        self.assertEqual(tournament.stage, TournamentStage.FINAL_RESULT)
        self.assertEqual(self.balances.balance_of("me"), 1000)
        self.assertTrue(self.events.of_type("grand_winner")[0].payload["pot_returned"])

    def test_two_finalists_use_duel_wheel(self) -> None:
        tournament = self.make_tournament(tournament_bot_entry_probability=0.0)
        human_color = tournament.human.assigned_color
        other = next(group for group in tournament.state.groups if group is not tournament.human_group)
        other.seating.holder_of(human_color).confirm_probability = 1.0
        seat_index = next(
            index for index, segment in enumerate(tournament.group_segments) if segment.color == human_color
        )
        self.wheel.outcomes = [seat_index] * 10 + [0]

        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS)
        tournament.spin_ended()
        self.loop.advance(FINAL_LEAD_SECONDS)

        self.assertEqual(len(tournament.state.finalists), 2)
        self.assertEqual(len(tournament.final_segments), 12)
        tournament.spin_ended()
        self.assertIs(tournament.grand_winner, tournament.state.finalists[0])

    def test_human_champion_ranks_up(self) -> None:
        tournament = self.make_tournament(tracker=RankTracker(UserRank.ROOKIE, 4))
        human_index = tournament.human_group.group_number - 1
        seat_color = tournament.human.assigned_color
        seat_index = next(
            index for index, segment in enumerate(tournament.group_segments) if segment.color == seat_color
        )
        self.wheel.outcomes = [seat_index] * 10 + [human_index]

        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS)
        tournament.spin_ended()
        self.loop.advance(FINAL_LEAD_SECONDS)
        tournament.spin_ended()

        self.assertEqual(tournament.grand_winner.id, "me")
        self.assertEqual(self.tracker.rank, UserRank.PRO)
        rank_events = self.events.of_type("rank_up")
        self.assertEqual(len(rank_events), 1)
        self.assertEqual(rank_events[0].payload["current"], "PRO")
        self.assertEqual(self.balances.balance_of("me"), 990 + 1000)

    def test_leave_stops_the_bracket(self) -> None:
        tournament = self.make_tournament()
        tournament.enter()
        self.loop.advance(GROUP_STAGE_SECONDS)
        tournament.leave()

        self.assertEqual(tournament.stage, TournamentStage.CLOSED)
        self.assertFalse(tournament.spin_ended())
        self.assertEqual(self.loop.pending, 0)


class RankTrackerTests(unittest.TestCase):
    def test_every_fifth_win_promotes(self) -> None:
        tracker = RankTracker()
        promotions = [tracker.record_win() for _ in range(15)]
        reached = [promotion.current for promotion in promotions if promotion is not None]
        self.assertEqual(reached, [UserRank.PRO, UserRank.MASTER, UserRank.LEGEND])
        self.assertTrue(tracker.can_create_rooms())

    def test_legend_is_the_ceiling(self) -> None:
        tracker = RankTracker(UserRank.LEGEND, 15)
        for _ in range(10):
            self.assertIsNone(tracker.record_win())
        self.assertEqual(tracker.rank, UserRank.LEGEND)
        self.assertEqual(tracker.rank_xp, 25)
