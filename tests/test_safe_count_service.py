from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import select

from backoffice.models import MoneyMovement, MovementDirection, MovementType, SafeCount, SafeCountSession
from backoffice.services.safe_count_service import (
    SafeCountRequest,
    TransferFloatsRequest,
    expected_for_session,
    get_safe_count_day,
    parse_session,
    save_safe_count,
    save_transfer_floats,
)
from tests.support import CASHIER_ID, LEAD_ID, MANAGER_ID, approved, at, make_session, seed_staff

# 20 bags of £1 coins plus two £50 notes.
FIVE_HUNDRED = ({'ONE_POUND': 20}, {'FIFTY_POUND': 2})


class SafeCountTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.addCleanup(self.db.close)
        seed_staff(self.db)
        self.db.add(
            SafeCount(
                count_date=at(1, 22).date(),
                session=SafeCountSession.NIGHT,
                expected_amount=Decimal('500.00'),
                actual_amount=Decimal('500.00'),
                variance=Decimal('0.00'),
                values=[],
                cashier=CASHIER_ID,
                manager=MANAGER_ID,
                created_at=at(1, 22),
            )
        )
        self.db.flush()

    def _save(self, session, bags, loose, now) -> SafeCount:
        return save_safe_count(
            self.db,
            request=SafeCountRequest(
                session=session,
                bags_by_code=bags,
                loose_by_code=loose,
                authorization=approved(CASHIER_ID, LEAD_ID),
            ),
            now=now,
        )

    def _transfer(self, quantities, now) -> SafeCount:
        return save_transfer_floats(
            self.db,
            request=TransferFloatsRequest(loose_by_code=quantities, authorization=approved(CASHIER_ID, MANAGER_ID)),
            now=now,
        )

    def test_morning_carries_forward_last_night(self) -> None:
        row = self._save('morning', *FIVE_HUNDRED, now=at(2, 8))

        self.assertEqual(row.expected_amount, Decimal('500.00'))
        self.assertEqual(row.actual_amount, Decimal('500.00'))
        self.assertEqual(row.variance, Decimal('0.00'))
        self.assertEqual(row.cashier, CASHIER_ID)
        self.assertEqual(row.manager, LEAD_ID)

        movement = self.db.execute(select(MoneyMovement)).scalar_one()
        self.assertEqual(movement.type, MovementType.SAFE_COUNT)
        self.assertEqual(movement.direction, MovementDirection.IN)
        self.assertEqual(movement.session, 'morning')
        self.assertEqual(movement.note, "Safe Count completed for session 'morning' by Casey Cashier")
        self.assertEqual(movement.idempotency_key, 'safe_count:2026-03-02:morning')

    def test_change_received_and_transfers_adjust_expected(self) -> None:
        self._save('morning', *FIVE_HUNDRED, now=at(2, 8))
        change = self._save('change_receive', {'TWO_POUND': 5}, {}, now=at(2, 10))
        self._transfer({'TWENTY_POUND': 2, 'TEN_POUND': 1}, now=at(2, 11))

        self.assertIsNone(change.expected_amount)
        self.assertIsNone(change.variance)
        self.assertEqual(change.actual_amount, Decimal('100.00'))

        changeover = self._save('changeover', *FIVE_HUNDRED, now=at(2, 15))

        # 500 from the morning, plus 100 change, minus 50 transferred out.
        self.assertEqual(changeover.expected_amount, Decimal('550.00'))
        self.assertEqual(changeover.variance, Decimal('-50.00'))

    def test_sessions_follow_the_day_order(self) -> None:
        with self.assertRaisesRegex(ValueError, 'before morning'):
            self._save('changeover', *FIVE_HUNDRED, now=at(2, 15))

        self._save('morning', *FIVE_HUNDRED, now=at(2, 8))
        with self.assertRaisesRegex(ValueError, 'before changeover'):
            self._save('night', *FIVE_HUNDRED, now=at(2, 22))

    def test_session_is_saved_once_per_day(self) -> None:
        self._save('morning', *FIVE_HUNDRED, now=at(2, 8))

        with self.assertRaisesRegex(ValueError, 'already been saved'):
            self._save('morning', *FIVE_HUNDRED, now=at(2, 9))

    def test_unauthorized_count_is_not_saved(self) -> None:
        with self.assertRaises(PermissionError):
            save_safe_count(
                self.db,
                request=SafeCountRequest(
                    session='morning',
                    bags_by_code={},
                    loose_by_code={'FIFTY_POUND': 1},
                    authorization=approved(CASHIER_ID, CASHIER_ID),
                ),
                now=at(2, 8),
            )

        self.assertIsNone(self.db.get(SafeCount, (at(2, 8).date(), SafeCountSession.MORNING)))

    def test_transfer_floats_saved_once_with_notes_only(self) -> None:
        with self.assertRaisesRegex(ValueError, 'at least one denomination'):
            self._transfer({'TEN_POUND': 0}, now=at(2, 11))
        with self.assertRaisesRegex(ValueError, 'Unknown denomination'):
            self._transfer({'ONE_POUND': 5}, now=at(2, 11))

        row = self._transfer({'FIVE_POUND': 3}, now=at(2, 11))
        self.assertEqual(row.session, SafeCountSession.TRANSFER_FLOATS)
        self.assertEqual(row.actual_amount, Decimal('15.00'))

        with self.assertRaisesRegex(ValueError, 'already been saved'):
            self._transfer({'FIVE_POUND': 1}, now=at(2, 12))

    def test_day_summary_marks_available_sessions(self) -> None:
        self._save('morning', *FIVE_HUNDRED, now=at(2, 8))

        summary = get_safe_count_day(self.db, on_date=at(2, 8).date(), today=at(2, 8).date())

        sessions = {item['session']: item for item in summary['sessions']}
        self.assertFalse(summary['read_only'])
        self.assertTrue(sessions['morning']['saved'])
        self.assertFalse(sessions['morning']['available'])
        self.assertTrue(sessions['changeover']['available'])
        self.assertFalse(sessions['night']['available'])
        self.assertTrue(sessions['change_receive']['available'])
        self.assertIsNone(summary['transfer_floats'])

        past = get_safe_count_day(self.db, on_date=at(1, 8).date(), today=at(2, 8).date())
        self.assertTrue(past['read_only'])
        self.assertFalse(any(item['available'] for item in past['sessions']))

    def test_expected_for_morning_without_history_is_zero(self) -> None:
        self.assertEqual(
            expected_for_session(self.db, session=SafeCountSession.MORNING, on_date=at(10, 8).date()),
            Decimal('0.00'),
        )

    def test_transfer_floats_is_not_a_count_session(self) -> None:
        with self.assertRaisesRegex(ValueError, 'Unknown safe count session'):
            parse_session('TransferFloats')


if __name__ == '__main__':
    unittest.main()
