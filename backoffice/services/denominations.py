from __future__ import annotations

from decimal import Decimal

CENT = Decimal('0.01')

DENOMINATIONS: list[dict] = [
    {'code': 'ONE_PENNY', 'label': '1p', 'unit_value': Decimal('0.01'), 'coins_per_bag': 100, 'position': 1},
    {'code': 'TWO_PENCE', 'label': '2p', 'unit_value': Decimal('0.02'), 'coins_per_bag': 50, 'position': 2},
    {'code': 'FIVE_PENCE', 'label': '5p', 'unit_value': Decimal('0.05'), 'coins_per_bag': 100, 'position': 3},
    {'code': 'TEN_PENCE', 'label': '10p', 'unit_value': Decimal('0.10'), 'coins_per_bag': 50, 'position': 4},
    {'code': 'TWENTY_PENCE', 'label': '20p', 'unit_value': Decimal('0.20'), 'coins_per_bag': 50, 'position': 5},
    {'code': 'FIFTY_PENCE', 'label': '50p', 'unit_value': Decimal('0.50'), 'coins_per_bag': 20, 'position': 6},
    {'code': 'ONE_POUND', 'label': '£1', 'unit_value': Decimal('1.00'), 'coins_per_bag': 20, 'position': 7},
    {'code': 'TWO_POUND', 'label': '£2', 'unit_value': Decimal('2.00'), 'coins_per_bag': 10, 'position': 8},
    {'code': 'FIVE_POUND', 'label': '£5', 'unit_value': Decimal('5.00'), 'coins_per_bag': 0, 'position': 9},
    {'code': 'TEN_POUND', 'label': '£10', 'unit_value': Decimal('10.00'), 'coins_per_bag': 0, 'position': 10},
    {'code': 'TWENTY_POUND', 'label': '£20', 'unit_value': Decimal('20.00'), 'coins_per_bag': 0, 'position': 11},
    {'code': 'FIFTY_POUND', 'label': '£50', 'unit_value': Decimal('50.00'), 'coins_per_bag': 0, 'position': 12},
]
DENOM_BY_CODE = {item['code']: item for item in DENOMINATIONS}

# Notes moved out of the drawer into the safe at close, and counted at banking.
SAFE_NOTE_THRESHOLD = Decimal('5.00')
NOTE_DENOMINATIONS = [item for item in DENOMINATIONS if item['unit_value'] >= SAFE_NOTE_THRESHOLD]


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT)


def _check_quantities(quantities_by_code: dict[str, int], allowed: list[dict]) -> None:
    allowed_codes = {item['code'] for item in allowed}
    for code, qty in quantities_by_code.items():
        if code not in allowed_codes:
            raise ValueError(f'Unknown denomination: {code}')
        if qty < 0:
            raise ValueError(f'Quantity cannot be negative for {DENOM_BY_CODE[code]["label"]}')


def count_lines(
    quantities_by_code: dict[str, int],
    denominations: list[dict] | None = None,
) -> tuple[list[dict], Decimal]:
    """Price a drawer count.

    Returns one line per denomination (zero quantities included) in display
    order, plus the total.  Amounts are stored as strings so the lines can be
    kept in JSON columns without losing precision.
    """
    denominations = denominations if denominations is not None else DENOMINATIONS
    _check_quantities(quantities_by_code, denominations)

    lines = []
    total = Decimal('0.00')
    for item in denominations:
        qty = int(quantities_by_code.get(item['code'], 0))
        amount = money(item['unit_value'] * qty)
        total += amount
        lines.append(
            {
                'code': item['code'],
                'denomination': item['label'],
                'count': qty,
                'value': str(amount),
            }
        )
    return lines, money(total)


def count_bagged_lines(
    bags_by_code: dict[str, int],
    loose_by_code: dict[str, int],
) -> tuple[list[dict], Decimal]:
    _check_quantities(bags_by_code, DENOMINATIONS)
    _check_quantities(loose_by_code, DENOMINATIONS)

    lines = []
    total = Decimal('0.00')
    for item in DENOMINATIONS:
        bags = int(bags_by_code.get(item['code'], 0))
        if bags and not item['coins_per_bag']:
            raise ValueError(f'{item["label"]} is not counted in bags')
        loose = int(loose_by_code.get(item['code'], 0))
        amount = money(item['unit_value'] * (bags * item['coins_per_bag'] + loose))
        total += amount
        lines.append(
            {
                'code': item['code'],
                'denomination': item['label'],
                'bags': bags,
                'loose': loose,
                'value': str(amount),
            }
        )
    return lines, money(total)


def safe_note_lines(lines: list[dict]) -> list[dict]:
    return [dict(line) for line in lines if DENOM_BY_CODE[line['code']]['unit_value'] >= SAFE_NOTE_THRESHOLD]


def lines_total(lines: list[dict]) -> Decimal:
    return money(sum((Decimal(str(line.get('value') or 0)) for line in lines), Decimal('0.00')))
