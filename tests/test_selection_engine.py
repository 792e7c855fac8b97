from __future__ import annotations

import random
import unittest
from collections import Counter
from datetime import datetime, timezone
from itertools import count

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from luckydraw.db.engine import get_sessionmaker, make_engine
from luckydraw.models import Base, Participant, Prize
from luckydraw.selection import ErrorKind, SelectionEngine, WinnerRecord


class SelectionEngineTestBase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine("sqlite+pysqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = get_sessionmaker(self.engine)
        seeds = count(1)
        self.selection = SelectionEngine(
            self.Session, rng_factory=lambda: random.Random(next(seeds))
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _seed(self, *, participants: int, quantity: int, batch_size: int) -> int:
        with self.Session.begin() as session:
            prize = Prize(name="Smartphone", quantity=quantity, batch_size=batch_size)
            session.add(prize)
            session.add_all(
                Participant(
                    code=f"E{i:03d}",
                    name=f"Employee {i}",
                    department="R&D" if i % 2 else "Sales",
                    avatar_url=f"avatars/e{i:03d}.jpg",
                )
                for i in range(participants)
            )
            session.flush()
            return prize.id

    def _add_prize(self, *, quantity: int, batch_size: int, name: str = "Extra") -> int:
        with self.Session.begin() as session:
            prize = Prize(name=name, quantity=quantity, batch_size=batch_size)
            session.add(prize)
            session.flush()
            return prize.id

    def _winner_count(self, prize_id: int) -> int:
        with self.Session() as session:
            return session.scalar(
                select(func.count(Participant.id)).where(Participant.prize_id == prize_id)
            )

    def _won_codes(self) -> set[str]:
        with self.Session() as session:
            return set(
                session.scalars(
                    select(Participant.code).where(Participant.is_winner.is_(True))
                ).all()
            )

    def _assert_state_invariant(self) -> None:
        with self.Session() as session:
            for p in session.scalars(select(Participant)).all():
                self.assertEqual(p.is_winner, p.prize_id is not None, p)
                self.assertEqual(p.is_winner, p.won_at is not None, p)


class ValidateTests(SelectionEngineTestBase):
    def test_validate_succeeds_without_side_effects(self) -> None:
        prize_id = self._seed(participants=3, quantity=2, batch_size=1)

        result = self.selection.validate(prize_id)

        self.assertTrue(result.ok)
        self.assertEqual(result.winners, [])
        self.assertEqual(self._won_codes(), set())

    def test_validate_unknown_prize(self) -> None:
        self._seed(participants=3, quantity=2, batch_size=1)
        result = self.selection.validate(9999)
        self.assertFalse(result.ok)
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)

    def test_validate_exhausted_prize_reports_counts(self) -> None:
        prize_id = self._seed(participants=5, quantity=2, batch_size=2)
        self.assertTrue(self.selection.draw(prize_id).ok)

        result = self.selection.validate(prize_id)
        self.assertEqual(result.error.kind, ErrorKind.PRIZE_EXHAUSTED)
        self.assertIn("2/2", result.error.message)

    def test_validate_checks_prize_before_participants(self) -> None:
        prize_id = self._seed(participants=0, quantity=1, batch_size=1)
        self.assertEqual(
            self.selection.validate(prize_id).error.kind,
            ErrorKind.NO_ELIGIBLE_PARTICIPANTS,
        )
        self.assertEqual(
            self.selection.validate(prize_id + 1).error.kind, ErrorKind.NOT_FOUND
        )


class DrawTests(SelectionEngineTestBase):
    def test_batch_then_capped_by_remaining(self) -> None:
        prize_id = self._seed(participants=10, quantity=3, batch_size=2)

        first = self.selection.draw(prize_id)
        self.assertTrue(first.ok)
        self.assertEqual(len(first.winners), 2)
        self.assertEqual(self._winner_count(prize_id), 2)

        second = self.selection.draw(prize_id)
        self.assertTrue(second.ok)
        self.assertEqual(len(second.winners), 1)
        self.assertEqual(self._winner_count(prize_id), 3)

        first_ids = {w.participant_id for w in first.winners}
        second_ids = {w.participant_id for w in second.winners}
        self.assertFalse(first_ids & second_ids)
        self._assert_state_invariant()

    def test_exhausted_prize_fails_and_retry_keeps_failing(self) -> None:
        prize_id = self._seed(participants=10, quantity=3, batch_size=3)
        self.assertEqual(len(self.selection.draw(prize_id).winners), 3)
        before = self._won_codes()

        for _ in range(2):
            result = self.selection.draw(prize_id)
            self.assertFalse(result.ok)
            self.assertEqual(result.error.kind, ErrorKind.PRIZE_EXHAUSTED)
            self.assertIn("3/3", result.error.message)
            self.assertEqual(result.winners, [])

        self.assertEqual(self._won_codes(), before)

    def test_no_eligible_participants_even_with_slots_left(self) -> None:
        prize_id = self._seed(participants=2, quantity=2, batch_size=2)
        other_id = self._add_prize(quantity=5, batch_size=1)
        self.assertEqual(len(self.selection.draw(prize_id).winners), 2)

        result = self.selection.draw(other_id)
        self.assertEqual(result.error.kind, ErrorKind.NO_ELIGIBLE_PARTICIPANTS)
        self.assertEqual(self._winner_count(other_id), 0)

    def test_unknown_prize(self) -> None:
        self._seed(participants=2, quantity=1, batch_size=1)
        result = self.selection.draw(12345)
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)
        self.assertEqual(self._won_codes(), set())

    def test_batch_larger_than_pool_draws_everyone_left(self) -> None:
        prize_id = self._seed(participants=2, quantity=5, batch_size=4)
        result = self.selection.draw(prize_id)
        self.assertTrue(result.ok)
        self.assertEqual(len(result.winners), 2)

    def test_winner_records_are_denormalized(self) -> None:
        prize_id = self._seed(participants=1, quantity=1, batch_size=1)
        result = self.selection.draw(prize_id)

        self.assertEqual(len(result.winners), 1)
        winner = result.winners[0]
        self.assertIsInstance(winner, WinnerRecord)
        self.assertEqual(winner.code, "E000")
        self.assertEqual(winner.name, "Employee 0")
        self.assertEqual(winner.department, "Sales")
        self.assertEqual(winner.avatar_url, "avatars/e000.jpg")
        self.assertEqual(winner.prize_id, prize_id)
        self.assertEqual(winner.prize_name, "Smartphone")
        self.assertIsNotNone(winner.won_at)

        data = winner.to_json()
        self.assertEqual(data["prize_name"], "Smartphone")
        self.assertIsInstance(data["won_at"], str)

    def test_winners_never_selected_twice(self) -> None:
        prize_a = self._seed(participants=6, quantity=3, batch_size=3)
        prize_b = self._add_prize(quantity=3, batch_size=3, name="Other")

        a = self.selection.draw(prize_a)
        b = self.selection.draw(prize_b)

        a_ids = {w.participant_id for w in a.winners}
        b_ids = {w.participant_id for w in b.winners}
        self.assertEqual(len(a_ids), 3)
        self.assertEqual(len(b_ids), 3)
        self.assertFalse(a_ids & b_ids)
        self.assertEqual(
            self.selection.draw(self._add_prize(quantity=1, batch_size=1)).error.kind,
            ErrorKind.NO_ELIGIBLE_PARTICIPANTS,
        )

    def test_failure_mid_transaction_rolls_back(self) -> None:
        prize_id = self._seed(participants=5, quantity=3, batch_size=3)
        calls = count()

        def flaky_clock() -> datetime:
            if next(calls) >= 1:
                raise OperationalError("UPDATE participants", {}, Exception("lock timeout"))
            return datetime.now(timezone.utc)

        flaky = SelectionEngine(self.Session, clock=flaky_clock)
        result = flaky.draw(prize_id)

        self.assertFalse(result.ok)
        self.assertEqual(result.error.kind, ErrorKind.TRANSACTION_FAILURE)
        self.assertEqual(result.winners, [])
        self.assertEqual(self._won_codes(), set())
        self.assertEqual(self._winner_count(prize_id), 0)

    def test_selection_is_uniform(self) -> None:
        prize_id = self._seed(participants=3, quantity=1, batch_size=1)
        tally: Counter[str] = Counter()

        for _ in range(300):
            result = self.selection.draw(prize_id)
            self.assertTrue(result.ok)
            winner = result.winners[0]
            tally[winner.code] += 1
            self.assertTrue(self.selection.cancel(winner.participant_id).ok)

        self.assertEqual(set(tally), {"E000", "E001", "E002"})
        for code, hits in tally.items():
            self.assertGreater(hits, 50, (code, tally))


class CancelTests(SelectionEngineTestBase):
    def test_cancel_reverts_and_participant_becomes_eligible(self) -> None:
        prize_id = self._seed(participants=2, quantity=2, batch_size=2)
        won = self.selection.draw(prize_id).winners
        self.assertEqual(len(won), 2)
        self.assertEqual(
            self.selection.validate(prize_id).error.kind, ErrorKind.PRIZE_EXHAUSTED
        )

        target = won[0].participant_id
        result = self.selection.cancel(target)
        self.assertTrue(result.ok)

        with self.Session() as session:
            p = session.get(Participant, target)
            self.assertFalse(p.is_winner)
            self.assertIsNone(p.prize_id)
            self.assertIsNone(p.won_at)
        self._assert_state_invariant()

        again = self.selection.draw(prize_id)
        self.assertTrue(again.ok)
        self.assertEqual([w.participant_id for w in again.winners], [target])

    def test_cancel_unknown_participant(self) -> None:
        self._seed(participants=1, quantity=1, batch_size=1)
        result = self.selection.cancel(4242)
        self.assertEqual(result.error.kind, ErrorKind.NOT_FOUND)

    def test_cancel_unwon_participant_is_noop(self) -> None:
        self._seed(participants=1, quantity=1, batch_size=1)
        with self.Session() as session:
            pid = session.scalar(select(Participant.id))
        self.assertTrue(self.selection.cancel(pid).ok)
        self.assertTrue(self.selection.cancel(pid, lock=True).ok)
        self._assert_state_invariant()


if __name__ == "__main__":
    unittest.main()
