from __future__ import annotations

import unittest
from decimal import Decimal

from backoffice.services.denominations import (
    DENOMINATIONS,
    NOTE_DENOMINATIONS,
    count_bagged_lines,
    count_lines,
    lines_total,
    safe_note_lines,
)


class CountLinesTests(unittest.TestCase):
    def test_total_is_sum_of_count_times_value(self) -> None:
        lines, total = count_lines({'TEN_POUND': 5, 'FIVE_POUND': 2})

        self.assertEqual(total, Decimal('60.00'))
        self.assertEqual(len(lines), len(DENOMINATIONS))
        by_code = {line['code']: line for line in lines}
        self.assertEqual(by_code['TEN_POUND'], {'code': 'TEN_POUND', 'denomination': '£10', 'count': 5, 'value': '50.00'})
        self.assertEqual(by_code['FIVE_POUND']['value'], '10.00')
        self.assertEqual(by_code['ONE_PENNY']['count'], 0)

    def test_pennies_do_not_drift(self) -> None:
        _, total = count_lines({'ONE_PENNY': 333, 'TWO_PENCE': 7, 'TWENTY_PENCE': 3})

        self.assertEqual(total, Decimal('4.07'))

    def test_negative_quantity_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValueError, 'cannot be negative'):
            count_lines({'ONE_POUND': -1})

    def test_unknown_code_is_rejected(self) -> None:
        with self.assertRaisesRegex(ValueError, 'Unknown denomination'):
            count_lines({'HUNDRED_POUND': 1})

    def test_restricted_denominations_reject_coins(self) -> None:
        with self.assertRaises(ValueError):
            count_lines({'ONE_POUND': 3}, NOTE_DENOMINATIONS)

        lines, total = count_lines({'TWENTY_POUND': 2}, NOTE_DENOMINATIONS)
        self.assertEqual([line['code'] for line in lines], ['FIVE_POUND', 'TEN_POUND', 'TWENTY_POUND', 'FIFTY_POUND'])
        self.assertEqual(total, Decimal('40.00'))


class BaggedCountTests(unittest.TestCase):
    def test_bags_multiply_by_coins_per_bag(self) -> None:
        lines, total = count_bagged_lines({'ONE_PENNY': 2, 'TWO_POUND': 1}, {'ONE_PENNY': 5, 'FIFTY_POUND': 1})

        by_code = {line['code']: line for line in lines}
        self.assertEqual(by_code['ONE_PENNY']['value'], '2.05')
        self.assertEqual(by_code['TWO_POUND']['value'], '20.00')
        self.assertEqual(by_code['FIFTY_POUND']['value'], '50.00')
        self.assertEqual(total, Decimal('72.05'))

    def test_notes_can_not_be_bagged(self) -> None:
        with self.assertRaisesRegex(ValueError, 'not counted in bags'):
            count_bagged_lines({'TEN_POUND': 1}, {})


class SafeNoteTests(unittest.TestCase):
    def test_only_five_pounds_and_above_go_to_the_safe(self) -> None:
        lines, _ = count_lines({'TWO_POUND': 4, 'FIVE_POUND': 1, 'FIFTY_POUND': 1})

        safe_lines = safe_note_lines(lines)

        self.assertEqual([line['code'] for line in safe_lines], ['FIVE_POUND', 'TEN_POUND', 'TWENTY_POUND', 'FIFTY_POUND'])
        self.assertEqual(lines_total(safe_lines), Decimal('55.00'))


if __name__ == '__main__':
    unittest.main()
