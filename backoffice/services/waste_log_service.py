from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import InventoryItem, WasteItem, WasteLog
from backoffice.services.denominations import money
from backoffice.services.stock_count_service import (
    free_log_id,
    get_inventory_item,
    pack_units,
    time_of_day,
)

logger = logging.getLogger(__name__)

WASTE_REASONS = {
    '1': 'End of Night',
    '2': 'Food Donation',
    '3': 'Customer Complaint',
    '4': 'Damaged Stock',
    '5': 'HACCP',
    '6': 'Out of Date',
    '7': 'Expired',
}
UNKNOWN_REASON = 'N/A'


@dataclass
class WasteLine:
    item_id: str
    reason_code: str
    boxes: int = 0
    inners: int = 0
    units: int = 0


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def format_reason(code: str) -> str:
    clean = (code or '').strip().rstrip('.')
    label = WASTE_REASONS.get(clean)
    if label is None:
        raise ValueError(f'Unknown waste reason: {code}')
    return f'{clean}. {label}'


def split_reason(reason: str | None) -> tuple[str, str]:
    """``'6. Out of Date'`` becomes ``('6', 'Out of Date')``."""
    parts = (reason or '').split(' ')
    code = parts[0].replace('.', '')
    return code, ' '.join(parts[1:])


def record_waste(
    db: Session,
    *,
    lines: list[WasteLine],
    employee_id: str,
    now: datetime | None = None,
) -> WasteLog:
    """Write one waste log and take the wasted units off stock on hand."""
    if not lines:
        raise ValueError('Please add at least one wasted item')
    now = now or _now()
    period = time_of_day(now)

    prepared: list[tuple[InventoryItem, WasteLine, int, str]] = []
    seen: set[str] = set()
    for line in lines:
        item = get_inventory_item(db, line.item_id, lock=True)
        if item.id in seen:
            raise ValueError(f'{item.item_name} was entered twice')
        seen.add(item.id)
        if min(line.boxes, line.inners, line.units) < 0:
            raise ValueError(f'Waste quantities for {item.item_name} cannot be negative')
        total = pack_units(item, boxes=line.boxes, inners=line.inners, units=line.units)
        if total == 0:
            raise ValueError(f'Enter a waste quantity for {item.item_name}')
        if total > item.total_stock_on_hand:
            raise ValueError(
                f'Waste for {item.item_name} ({total}) is more than stock on hand ({item.total_stock_on_hand})'
            )
        prepared.append((item, line, total, format_reason(line.reason_code)))

    log = WasteLog(
        id=free_log_id(db, WasteLog, now),
        log_date=now.date(),
        timestamp=now,
        total_waste=sum(total for _, _, total, _ in prepared),
        time_of_day=period,
        employee_id=employee_id,
    )
    db.add(log)
    db.flush()

    for item, line, total, reason in prepared:
        db.add(
            WasteItem(
                log_id=log.id,
                item_id=item.id,
                item_name=item.item_name,
                boxes_count=line.boxes,
                inner_count=line.inners,
                units_count=line.units,
                total_waste=total,
                reason=reason,
                time_of_day=period,
            )
        )
        item.total_stock_on_hand -= total
        item.last_updated = now
    db.flush()
    logger.info('Waste log %s by %s: %s units across %s items', log.id, employee_id, log.total_waste, len(prepared))
    return log


def _waste_items(db: Session, log_ids: list[str]) -> dict[str, list[dict]]:
    if not log_ids:
        return {}
    rows = db.execute(
        select(WasteItem).where(WasteItem.log_id.in_(log_ids)).order_by(WasteItem.item_name.asc())
    ).scalars().all()
    grouped: dict[str, list[dict]] = defaultdict(list)
    for row in rows:
        reason_code, reason_text = split_reason(row.reason)
        grouped[row.log_id].append(
            {
                'item_id': row.item_id,
                'item_name': row.item_name,
                'boxes': row.boxes_count,
                'inners': row.inner_count,
                'units': row.units_count,
                'total_waste': row.total_waste,
                'reason_code': reason_code,
                'reason_text': reason_text,
                'time_of_day': row.time_of_day.value,
            }
        )
    return grouped


def list_waste_logs(db: Session, *, on_date: date | None = None) -> list[dict]:
    query = select(WasteLog).order_by(WasteLog.timestamp.desc(), WasteLog.id.desc())
    if on_date is not None:
        query = query.where(WasteLog.log_date == on_date)
    logs = db.execute(query).scalars().all()
    items_by_log = _waste_items(db, [log.id for log in logs])
    return [
        {
            'id': log.id,
            'date': log.log_date,
            'timestamp': log.timestamp,
            'total_waste': log.total_waste,
            'time_of_day': log.time_of_day.value,
            'employee_id': log.employee_id,
            'waste_items': items_by_log.get(log.id, []),
        }
        for log in logs
    ]


def waste_report(db: Session, *, date_from: date, date_to: date) -> dict:
    """Waste per item over a date range, costed where the item has a unit cost."""
    if date_from > date_to:
        raise ValueError('Start date must be on or before end date')

    rows = db.execute(
        select(WasteItem, InventoryItem.unit_cost)
        .join(WasteLog, WasteLog.id == WasteItem.log_id)
        .join(InventoryItem, InventoryItem.id == WasteItem.item_id)
        .where(WasteLog.log_date >= date_from, WasteLog.log_date <= date_to)
        .order_by(WasteItem.item_name.asc(), WasteLog.timestamp.asc())
    ).all()

    by_item: dict[str, dict] = {}
    for waste_item, unit_cost in rows:
        entry = by_item.get(waste_item.item_id)
        if entry is None:
            entry = {
                'item_id': waste_item.item_id,
                'item_name': waste_item.item_name,
                'unit_cost': money(unit_cost) if unit_cost is not None else None,
                'waste_units': 0,
                'loss': Decimal('0.00') if unit_cost is not None else None,
                'reasons': [],
            }
            by_item[waste_item.item_id] = entry
        entry['waste_units'] += waste_item.total_waste
        if entry['loss'] is not None:
            entry['loss'] = money(entry['loss'] + entry['unit_cost'] * waste_item.total_waste)
        _, reason_text = split_reason(waste_item.reason)
        reason_text = reason_text or UNKNOWN_REASON
        if reason_text not in entry['reasons']:
            entry['reasons'].append(reason_text)

    items = list(by_item.values())
    return {
        'items': items,
        'total_waste_units': sum(entry['waste_units'] for entry in items),
        'total_loss': money(sum((entry['loss'] for entry in items if entry['loss'] is not None), Decimal('0'))),
        'uncosted_item_count': sum(1 for entry in items if entry['loss'] is None),
    }
