from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import func, select

from backoffice.exceptions import VarianceReasonRequired
from backoffice.models import Float, FloatClosure, MoneyMovement, MovementDirection, MovementType, SafeFloat
from backoffice.services.float_service import (
    FloatCloseRequest,
    FloatOpenRequest,
    VarianceDecision,
    check_close_count,
    close_float,
    evaluate_close_variance,
    get_assigned_float,
    open_float,
    prepare_float_open,
)
from tests.support import CASHIER_ID, MANAGER_ID, SECOND_CASHIER_ID, approved, at, make_session, seed_staff

DRAWER = {'TEN_POUND': 5, 'FIVE_POUND': 2, 'ONE_POUND': 10}


class FloatTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.addCleanup(self.db.close)
        seed_staff(self.db)

    def _open(self, float_type='A', cashier_id=CASHIER_ID, quantities=None, now=None) -> Float:
        return open_float(
            self.db,
            request=FloatOpenRequest(
                float_type=float_type,
                cashier_id=cashier_id,
                quantities_by_code=DRAWER if quantities is None else quantities,
                authorization=approved(cashier_id),
            ),
            now=now or at(2, 9),
        )

    def _close(self, quantities=None, attempt=1, reason='', cashier_id=CASHIER_ID, now=None) -> FloatClosure:
        return close_float(
            self.db,
            request=FloatCloseRequest(
                cashier_id=cashier_id,
                quantities_by_code=DRAWER if quantities is None else quantities,
                authorization=approved(cashier_id),
                attempt=attempt,
                reason=reason,
            ),
            now=now or at(2, 17),
        )

    def _count(self, model) -> int:
        return self.db.execute(select(func.count()).select_from(model)).scalar_one()


class OpenFloatTests(FloatTestCase):
    def test_open_records_float_and_ledger_entry(self) -> None:
        float_row = self._open(quantities={'TEN_POUND': 5, 'FIVE_POUND': 2})

        self.assertEqual(float_row.id, 'floatA_2026-03-02')
        self.assertEqual(float_row.total, Decimal('60.00'))
        self.assertEqual(float_row.initial_count, Decimal('60.00'))
        self.assertEqual(float_row.retained_amount, Decimal('0.00'))
        self.assertTrue(float_row.is_open)
        self.assertFalse(float_row.closed)

        movement = self.db.execute(select(MoneyMovement)).scalar_one()
        self.assertEqual(movement.id, '2026-03-02_09-00-00')
        self.assertEqual(movement.type, MovementType.FLOAT_OPEN)
        self.assertEqual(movement.direction, MovementDirection.IN)
        self.assertEqual(movement.amount, Decimal('60.00'))
        self.assertEqual(movement.note, 'Float opened (A) for cashier Casey Cashier')
        self.assertEqual(movement.authorised_witness_id, MANAGER_ID)

    def test_open_twice_is_rejected_without_duplicate(self) -> None:
        self._open()

        with self.assertRaisesRegex(ValueError, 'already assigned and still open'):
            self._open(cashier_id=SECOND_CASHIER_ID, now=at(2, 10))

        self.assertEqual(self._count(Float), 1)
        self.assertEqual(self._count(MoneyMovement), 1)

    def test_cashier_can_hold_only_one_open_float(self) -> None:
        self._open('A')

        with self.assertRaisesRegex(ValueError, 'already has an open float'):
            self._open('B', now=at(2, 10))

    def test_authorizing_cashier_must_be_selected_cashier(self) -> None:
        with self.assertRaisesRegex(PermissionError, 'does not match the selected cashier'):
            open_float(
                self.db,
                request=FloatOpenRequest(
                    float_type='A',
                    cashier_id=CASHIER_ID,
                    quantities_by_code=DRAWER,
                    authorization=approved(SECOND_CASHIER_ID),
                ),
                now=at(2, 9),
            )

        self.assertEqual(self._count(Float), 0)

    def test_unknown_float_type_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValueError, 'Unknown float type'):
            self._open('E')

    def test_prepare_reports_unknown_cashier(self) -> None:
        with self.assertRaises(LookupError):
            prepare_float_open(self.db, float_type='A', cashier_id='99999', now=at(2, 8))

    def test_prepare_reports_zero_without_previous_closure(self) -> None:
        prepared = prepare_float_open(self.db, float_type='C', cashier_id=CASHIER_ID, now=at(2, 8))

        self.assertEqual(prepared['float_id'], 'floatC_2026-03-02')
        self.assertEqual(prepared['cashier_name'], 'Casey Cashier')
        self.assertEqual(prepared['expected_float'], Decimal('0.00'))


class CloseVarianceTests(unittest.TestCase):
    def test_small_variance_goes_straight_to_authorization(self) -> None:
        self.assertEqual(evaluate_close_variance(Decimal('1.00'), 1), VarianceDecision.AUTHORIZE)
        self.assertEqual(evaluate_close_variance(Decimal('-1.00'), 1), VarianceDecision.AUTHORIZE)
        self.assertEqual(evaluate_close_variance(Decimal('0.00'), 7), VarianceDecision.AUTHORIZE)

    def test_larger_variance_asks_for_two_recounts_then_a_reason(self) -> None:
        self.assertEqual(evaluate_close_variance(Decimal('1.01'), 1), VarianceDecision.RECOUNT)
        self.assertEqual(evaluate_close_variance(Decimal('-5.00'), 2), VarianceDecision.RECOUNT)
        self.assertEqual(evaluate_close_variance(Decimal('1.01'), 3), VarianceDecision.REASON_REQUIRED)
        self.assertEqual(evaluate_close_variance(Decimal('20.00'), 4), VarianceDecision.REASON_REQUIRED)


class CloseFloatTests(FloatTestCase):
    def test_close_moves_notes_to_safe_and_retains_the_rest(self) -> None:
        self._open()

        closure = self._close()

        self.assertEqual(closure.id, f'{CASHIER_ID}_2026-03-02')
        self.assertEqual(closure.expected_amount, Decimal('70.00'))
        self.assertEqual(closure.total, Decimal('70.00'))
        self.assertEqual(closure.variance, Decimal('0.00'))
        self.assertEqual(closure.retained_amount, Decimal('10.00'))

        safe_float = self.db.get(SafeFloat, closure.id)
        self.assertFalse(safe_float.is_dropped)
        self.assertEqual([line['code'] for line in safe_float.denominations], ['FIVE_POUND', 'TEN_POUND', 'TWENTY_POUND', 'FIFTY_POUND'])

        float_row = self.db.get(Float, 'floatA_2026-03-02')
        self.assertTrue(float_row.closed)
        self.assertFalse(float_row.is_open)
        self.assertIsNone(get_assigned_float(self.db, CASHIER_ID))

        movement = self.db.execute(
            select(MoneyMovement).where(MoneyMovement.type == MovementType.CASHIER_CLOSE)
        ).scalar_one()
        self.assertEqual(movement.direction, MovementDirection.OUT)
        self.assertEqual(movement.amount, Decimal('70.00'))
        self.assertEqual(movement.variance, Decimal('0.00'))

    def test_next_open_starts_from_retained_amount(self) -> None:
        self._open()
        self._close()

        prepared = prepare_float_open(self.db, float_type='A', cashier_id=SECOND_CASHIER_ID, now=at(3, 8))
        self.assertEqual(prepared['expected_float'], Decimal('10.00'))

        reopened = self._open(cashier_id=SECOND_CASHIER_ID, quantities={'ONE_POUND': 5}, now=at(3, 9))
        self.assertEqual(reopened.retained_amount, Decimal('10.00'))
        self.assertEqual(reopened.initial_count, Decimal('5.00'))
        self.assertEqual(reopened.total, Decimal('15.00'))
        self.assertEqual(reopened.variance, Decimal('-5.00'))

    def test_variance_within_a_pound_closes_on_first_attempt(self) -> None:
        self._open()

        closure = self._close(quantities={'TEN_POUND': 5, 'FIVE_POUND': 2, 'ONE_POUND': 9, 'FIFTY_PENCE': 1})

        self.assertEqual(closure.variance, Decimal('-0.50'))

    def test_variance_needs_recount_then_reason(self) -> None:
        self._open()
        short = {'TEN_POUND': 4, 'FIVE_POUND': 2, 'ONE_POUND': 10}

        check = check_close_count(self.db, cashier_id=CASHIER_ID, quantities_by_code=short, attempt=1)
        self.assertEqual(check.variance, Decimal('-10.00'))
        self.assertEqual(check.decision, VarianceDecision.RECOUNT)

        with self.assertRaisesRegex(ValueError, 'recheck the denominations'):
            self._close(quantities=short, attempt=2)
        with self.assertRaises(VarianceReasonRequired) as ctx:
            self._close(quantities=short, attempt=3, reason='   ')
        self.assertEqual(ctx.exception.variance, Decimal('-10.00'))
        self.assertEqual(self._count(FloatClosure), 0)

        closure = self._close(quantities=short, attempt=3, reason='Paid a supplier in cash')

        self.assertEqual(closure.reason, 'Paid a supplier in cash')
        movement = self.db.execute(
            select(MoneyMovement).where(MoneyMovement.type == MovementType.CASHIER_CLOSE)
        ).scalar_one()
        self.assertEqual(movement.note, 'Paid a supplier in cash')

    def test_close_requires_an_assigned_float(self) -> None:
        with self.assertRaisesRegex(ValueError, 'assigned float'):
            self._close()

    def test_close_by_different_authorizing_cashier_is_rejected(self) -> None:
        self._open()

        with self.assertRaisesRegex(PermissionError, 'Invalid cashier ID'):
            close_float(
                self.db,
                request=FloatCloseRequest(
                    cashier_id=CASHIER_ID,
                    quantities_by_code=DRAWER,
                    authorization=approved(SECOND_CASHIER_ID),
                ),
                now=at(2, 17),
            )

        self.assertTrue(self.db.get(Float, 'floatA_2026-03-02').is_open)

    def test_closed_float_can_not_be_reopened_the_same_day(self) -> None:
        self._open()
        self._close()

        with self.assertRaisesRegex(ValueError, 'already been closed'):
            self._open(cashier_id=SECOND_CASHIER_ID, now=at(2, 18))

    def test_cashier_who_closed_today_can_not_open_another_float(self) -> None:
        self._open('A')
        self._close(now=at(2, 12))

        with self.assertRaisesRegex(ValueError, 'Casey Cashier has already closed a float on 2026-03-02'):
            prepare_float_open(self.db, float_type='B', cashier_id=CASHIER_ID, now=at(2, 13))
        with self.assertRaisesRegex(ValueError, 'Casey Cashier has already closed a float on 2026-03-02'):
            self._open('B', now=at(2, 13))

        self.assertIsNone(self.db.get(Float, 'floatB_2026-03-02'))
        self.assertIsNone(get_assigned_float(self.db, CASHIER_ID))
        self.assertEqual(self._count(Float), 1)
        self.assertEqual(self._count(MoneyMovement), 2)

    def test_cashier_who_closed_yesterday_can_open_and_close_today(self) -> None:
        self._open('A')
        self._close(now=at(2, 12))

        self._open('B', now=at(3, 9))
        closure = self._close(now=at(3, 17))

        self.assertEqual(closure.id, f'{CASHIER_ID}_2026-03-03')
        self.assertEqual(closure.float_id, 'floatB_2026-03-03')


class FloatRollbackTests(FloatTestCase):
    def test_ledger_collision_after_float_flush_rolls_back_everything(self) -> None:
        self.db.add(
            MoneyMovement(
                id='2026-03-01_23-59-59',
                type=MovementType.FLOAT_OPEN,
                direction=MovementDirection.IN,
                amount=Decimal('1.00'),
                user_id=CASHIER_ID,
                timestamp=at(1, 23, 59, 59),
                authorised_cashier_id=CASHIER_ID,
                authorised_witness_id=MANAGER_ID,
                idempotency_key='float_open:floatA_2026-03-02',
            )
        )
        self.db.commit()

        with self.assertRaises(ValueError):
            self._open()
        self.db.rollback()

        self.assertEqual(self._count(Float), 0)
        self.assertEqual(self._count(MoneyMovement), 1)
        self.assertIsNone(get_assigned_float(self.db, CASHIER_ID))

    def test_ledger_collision_on_close_keeps_float_open(self) -> None:
        self._open()
        self.db.commit()
        self.db.add(
            MoneyMovement(
                id='2026-03-01_23-59-59',
                type=MovementType.CASHIER_CLOSE,
                direction=MovementDirection.OUT,
                amount=Decimal('1.00'),
                user_id=CASHIER_ID,
                timestamp=at(1, 23, 59, 59),
                authorised_cashier_id=CASHIER_ID,
                authorised_witness_id=MANAGER_ID,
                idempotency_key=f'cashier_close:{CASHIER_ID}_2026-03-02',
            )
        )
        self.db.commit()

        with self.assertRaises(ValueError):
            self._close()
        self.db.rollback()

        self.assertEqual(self._count(FloatClosure), 0)
        self.assertEqual(self._count(SafeFloat), 0)
        self.assertEqual(self._count(MoneyMovement), 2)
        float_row = self.db.get(Float, 'floatA_2026-03-02')
        self.assertTrue(float_row.is_open)
        self.assertFalse(float_row.closed)


if __name__ == '__main__':
    unittest.main()
