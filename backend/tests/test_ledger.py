import unittest

from xspin.enums import PlayerStatus
from xspin.game.exceptions import InsufficientFunds, InvalidBetAmount, InvalidPhase, NoWinner
from xspin.game.ledger import BetLedger, InMemoryBalanceStore
from xspin.game.players import BotPlayer, HumanPlayer, Seating
from xspin.game.segments import Segment


def _table(count: int = 3, balance: int = 1000):
    balances = InMemoryBalanceStore(default_balance=balance)
    players = [HumanPlayer(id="me", username="me")]
    players += [BotPlayer(id=f"bot-{index}", username=f"bot{index}") for index in range(count - 1)]
    seating = Seating(players)
    seating.assign_colors(["red", "blue", "green", "yellow"][:count])
    ledger = BetLedger(balances, min_bet=10)
    ledger.register(seating)
    return balances, seating, ledger


class BetLedgerTests(unittest.TestCase):
    def test_confirm_debits_and_pot_sums_confirmed_only(self) -> None:
        balances, seating, ledger = _table()
        me, first, second = seating.players
        ledger.place(me, 100)
        ledger.confirm(me)
        ledger.place(first, 50)
        ledger.confirm(first)
        ledger.place(second, 70)

        self.assertEqual(balances.balance_of("me"), 900)
        self.assertEqual(balances.balance_of("bot-1"), 1000)
        self.assertEqual(ledger.pot(), 150)

    def test_bet_limits(self) -> None:
        _, seating, ledger = _table(balance=100)
        me = seating.players[0]
        with self.assertRaises(InvalidBetAmount):
            ledger.place(me, 5)
        with self.assertRaises(InvalidBetAmount):
            ledger.place(me, 101)
        self.assertEqual(me.status, PlayerStatus.IDLE)

    def test_insufficient_funds_leaves_state_untouched(self) -> None:
        balances, seating, ledger = _table()
        me = seating.players[0]
        ledger.place(me, 800)
        balances.apply_delta("me", -500)

        with self.assertRaises(InsufficientFunds):
            ledger.confirm(me)
        self.assertEqual(balances.balance_of("me"), 500)
        self.assertEqual(me.status, PlayerStatus.PLACED)

    def test_pot_is_frozen_after_lock(self) -> None:
        _, seating, ledger = _table()
        me, bot, _ = seating.players
        ledger.place(me, 100)
        ledger.confirm(me)
        ledger.place(bot, 40)

        self.assertEqual(ledger.lock(), 100)
        with self.assertRaises(InvalidPhase):
            ledger.confirm(bot)
        self.assertEqual(ledger.lock(), 100)
        self.assertEqual(ledger.pot(), 100)

    def test_cancel_only_from_placed(self) -> None:
        _, seating, ledger = _table()
        me = seating.players[0]
        with self.assertRaises(InvalidPhase):
            ledger.cancel(me)
        ledger.place(me, 20)
        ledger.cancel(me)
        self.assertEqual((me.status, me.bet_amount), (PlayerStatus.IDLE, 0))

    def test_color_match_settles_once(self) -> None:
        balances, seating, ledger = _table()
        me, bot, _ = seating.players
        for player in (me, bot):
            ledger.place(player, 100)
            ledger.confirm(player)
        ledger.lock()

        segment = Segment(label="BLU", color="blue", value=0)
        first = ledger.settle(segment)
        second = ledger.settle(segment)

        self.assertIs(first, second)
        self.assertEqual(first.winner_id, "bot-0")
        self.assertEqual(first.amount, 400)
        self.assertEqual(balances.balance_of("bot-0"), 1300)

    def test_unclaimed_color_refunds_stakes(self) -> None:
        balances, seating, ledger = _table()
        me = seating.players[0]
        ledger.place(me, 100)
        ledger.confirm(me)
        ledger.lock()

        with self.assertRaises(NoWinner):
            ledger.winner_for(Segment(label="GRE", color="green", value=0))
        settlement = ledger.settle(Segment(label="GRE", color="green", value=0))

        self.assertTrue(settlement.no_winner)
        self.assertEqual(settlement.refunds, {"me": 100})
        self.assertEqual(balances.balance_of("me"), 1000)

    def test_duel_resolution_needs_confirmed_seat(self) -> None:
        _, seating, ledger = _table(count=2)
        me, bot = seating.players
        ledger.place(me, 100)
        ledger.confirm(me)

        self.assertIs(ledger.winner_for(Segment("P1", "red", 0), is_duel=True, seats=seating.players), me)
        with self.assertRaises(NoWinner):
            ledger.winner_for(Segment("P2", "blue", 1), is_duel=True, seats=seating.players)

    def test_award_credits_exactly_once(self) -> None:
        balances, seating, ledger = _table()
        bot = seating.players[1]
        ledger.award(bot, 1000)
        ledger.award(bot, 1000)
        self.assertEqual(balances.balance_of("bot-0"), 2000)

    def test_balance_store_refuses_negative(self) -> None:
        balances = InMemoryBalanceStore(default_balance=10)
        with self.assertRaises(InsufficientFunds):
            balances.apply_delta("me", -11)
        self.assertEqual(balances.balance_of("me"), 10)
