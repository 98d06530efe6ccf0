from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from backoffice.models import (
    InventoryItem,
    InventoryLog,
    InventoryLogItem,
    StockCountStatus,
    StockLineStatus,
    TimeOfDay,
)
from backoffice.services.denominations import money

logger = logging.getLogger(__name__)

ITEM_ID_RE = re.compile(r'^item0*(\d+)$')
LOG_ID_FORMAT = '%Y-%m-%d_%H-%M-%S'
DEFAULT_UNIT = 'EA'


@dataclass
class NewInventoryItem:
    item_id: str
    item_name: str
    unit: str = DEFAULT_UNIT
    units_per_inner: int = 1
    inner_per_box: int = 1
    boxes: int = 0
    inners: int = 0
    units: int = 0
    unit_cost: Decimal | None = None


@dataclass
class StockCountLine:
    item_id: str
    boxes: int = 0
    inners: int = 0
    units: int = 0


@dataclass
class StockCountResult:
    log: InventoryLog | None
    matched_item_ids: list[str] = field(default_factory=list)
    variance_item_ids: list[str] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def normalize_item_id(raw: str) -> str:
    """``'Item 07'`` and ``'item7'`` both become ``'item7'``."""
    compact = re.sub(r'\s+', '', (raw or '').strip().lower())
    match = ITEM_ID_RE.match(compact)
    if not match:
        raise ValueError('Invalid item ID format. Use format like "item07" or "item7".')
    return f'item{int(match.group(1))}'


def normalize_item_name(raw: str) -> str:
    return re.sub(r'\s+', '', (raw or '').strip().lower())


def _item_sort_key(item: InventoryItem) -> tuple[int, str]:
    digits = re.sub(r'\D', '', item.id)
    return (int(digits) if digits else 0, item.id)


def _non_negative(value: int | None, label: str) -> int:
    number = int(value or 0)
    if number < 0:
        raise ValueError(f'{label} cannot be negative')
    return number


def pack_units(item: InventoryItem, *, boxes: int, inners: int, units: int) -> int:
    """Total single units for a count given in boxes, inner packs and units."""
    return boxes * item.inner_per_box * item.units_per_inner + inners * item.units_per_inner + units


def time_of_day(moment: datetime) -> TimeOfDay:
    if moment.hour < 12:
        return TimeOfDay.MORNING
    if moment.hour < 17:
        return TimeOfDay.AFTERNOON
    return TimeOfDay.NIGHT


def free_log_id(db: Session, model, occurred_at: datetime) -> str:
    base = occurred_at.strftime(LOG_ID_FORMAT)
    candidate = base
    suffix = 1
    while db.get(model, candidate) is not None:
        suffix += 1
        candidate = f'{base}-{suffix}'
    return candidate


def list_inventory(db: Session, *, include_inactive: bool = False) -> list[InventoryItem]:
    query = select(InventoryItem)
    if not include_inactive:
        query = query.where(InventoryItem.active.is_(True))
    return sorted(db.execute(query).scalars().all(), key=_item_sort_key)


def get_inventory_item(db: Session, item_id: str, *, lock: bool = False) -> InventoryItem:
    item = db.get(InventoryItem, normalize_item_id(item_id), with_for_update=lock)
    if item is None:
        raise LookupError(f'Inventory item {item_id} not found')
    return item


def add_inventory_item(db: Session, *, new_item: NewInventoryItem, now: datetime | None = None) -> InventoryItem:
    item_id = normalize_item_id(new_item.item_id)
    clean_name = (new_item.item_name or '').strip()
    if not clean_name:
        raise ValueError('Item name is required')
    units_per_inner = _non_negative(new_item.units_per_inner, 'Units per inner')
    inner_per_box = _non_negative(new_item.inner_per_box, 'Inners per box')

    if db.get(InventoryItem, item_id) is not None:
        raise ValueError('This item ID already exists. Please try another one.')
    normalized_name = normalize_item_name(clean_name)
    name_taken = db.execute(
        select(InventoryItem.id).where(InventoryItem.normalized_name == normalized_name)
    ).scalar_one_or_none()
    if name_taken is not None:
        raise ValueError('This item name (or a variation of it) already exists. Please try another one.')

    item = InventoryItem(
        id=item_id,
        item_name=clean_name,
        normalized_name=normalized_name,
        unit=(new_item.unit or DEFAULT_UNIT).strip().upper(),
        units_per_inner=units_per_inner,
        inner_per_box=inner_per_box,
        unit_cost=money(new_item.unit_cost) if new_item.unit_cost is not None else None,
        active=True,
        last_updated=now or _now(),
    )
    item.total_stock_on_hand = pack_units(
        item,
        boxes=_non_negative(new_item.boxes, 'Boxes'),
        inners=_non_negative(new_item.inners, 'Inners'),
        units=_non_negative(new_item.units, 'Units'),
    )
    db.add(item)
    db.flush()
    logger.info('Inventory item %s added with %s units on hand', item.id, item.total_stock_on_hand)
    return item


def update_inventory_item(
    db: Session,
    *,
    item_id: str,
    item_name: str | None = None,
    units_per_inner: int | None = None,
    inner_per_box: int | None = None,
    total_stock_on_hand: int | None = None,
    unit_cost: Decimal | None = None,
    now: datetime | None = None,
) -> tuple[InventoryItem, list[dict]]:
    """Apply an edit from the inventory records page and report what changed."""
    item = get_inventory_item(db, item_id, lock=True)
    changes: list[dict] = []

    def _set(field_name: str, value) -> None:
        old_value = getattr(item, field_name)
        if value is None or value == old_value:
            return
        changes.append({'field': field_name, 'old_value': str(old_value), 'new_value': str(value)})
        setattr(item, field_name, value)

    if item_name is not None:
        clean_name = item_name.strip()
        if not clean_name:
            raise ValueError('Item name is required')
        normalized_name = normalize_item_name(clean_name)
        clash = db.execute(
            select(InventoryItem.id).where(
                InventoryItem.normalized_name == normalized_name,
                InventoryItem.id != item.id,
            )
        ).scalar_one_or_none()
        if clash is not None:
            raise ValueError('This item name (or a variation of it) already exists. Please try another one.')
        _set('item_name', clean_name)
        item.normalized_name = normalized_name
    if units_per_inner is not None:
        _set('units_per_inner', _non_negative(units_per_inner, 'Units per inner'))
    if inner_per_box is not None:
        _set('inner_per_box', _non_negative(inner_per_box, 'Inners per box'))
    if total_stock_on_hand is not None:
        _set('total_stock_on_hand', _non_negative(total_stock_on_hand, 'Stock on hand'))
    if unit_cost is not None:
        _set('unit_cost', money(unit_cost))

    if changes:
        item.last_updated = now or _now()
        db.flush()
    return item, changes


def deactivate_inventory_item(db: Session, *, item_id: str) -> InventoryItem:
    item = get_inventory_item(db, item_id, lock=True)
    item.active = False
    db.flush()
    return item


def submit_stock_count(
    db: Session,
    *,
    lines: list[StockCountLine],
    employee_id: str,
    apply: bool = False,
    now: datetime | None = None,
) -> StockCountResult:
    """Compare counted stock against the records.

    Only items whose count differs from stock on hand are logged.  With
    ``apply`` the counted figure replaces stock on hand; without it the
    lines are flagged for a recount and stock is left alone.
    """
    if not lines:
        raise ValueError('Please count at least one item')
    now = now or _now()

    seen: set[str] = set()
    counted: list[tuple[InventoryItem, StockCountLine, int]] = []
    for line in lines:
        item = get_inventory_item(db, line.item_id, lock=True)
        if item.id in seen:
            raise ValueError(f'{item.item_name} was counted twice')
        if not item.active:
            raise ValueError(f'{item.item_name} is no longer stocked')
        seen.add(item.id)
        boxes = _non_negative(line.boxes, f'Boxes for {item.item_name}')
        inners = _non_negative(line.inners, f'Inners for {item.item_name}')
        units = _non_negative(line.units, f'Units for {item.item_name}')
        counted.append((item, StockCountLine(item.id, boxes, inners, units), pack_units(item, boxes=boxes, inners=inners, units=units)))

    result = StockCountResult(log=None)
    with_variance = []
    for item, line, total in counted:
        if total == item.total_stock_on_hand:
            result.matched_item_ids.append(item.id)
        else:
            with_variance.append((item, line, total))
            result.variance_item_ids.append(item.id)
    if not with_variance:
        logger.info('Stock count by %s matched records for %s items', employee_id, len(counted))
        return result

    log = InventoryLog(
        id=free_log_id(db, InventoryLog, now),
        log_date=now.date(),
        timestamp=now,
        status=StockCountStatus.ADJUSTED if apply else StockCountStatus.RECORDED,
        total_variance=sum(total - item.total_stock_on_hand for item, _, total in with_variance),
        employee_id=employee_id,
    )
    db.add(log)
    db.flush()

    period = time_of_day(now)
    for item, line, total in with_variance:
        previous = item.total_stock_on_hand
        db.add(
            InventoryLogItem(
                log_id=log.id,
                item_id=item.id,
                item_name=item.item_name,
                unit=item.unit,
                boxes_count=line.boxes,
                inner_count=line.inners,
                units_count=line.units,
                total_counted=total,
                variance=total - previous,
                previous_stock=previous,
                new_stock=total if apply else previous,
                needs_recount=not apply,
                status=StockLineStatus.RECORDED_WITH_VARIANCE,
                time_of_day=period,
            )
        )
        if apply:
            item.total_stock_on_hand = total
            item.last_updated = now
    db.flush()

    result.log = log
    logger.info(
        'Stock count %s by %s: %s items with variance, total variance %s, applied=%s',
        log.id,
        employee_id,
        len(with_variance),
        log.total_variance,
        apply,
    )
    return result


def _log_item_dict(row: InventoryLogItem) -> dict:
    return {
        'item_id': row.item_id,
        'item_name': row.item_name,
        'unit': row.unit,
        'boxes': row.boxes_count,
        'inners': row.inner_count,
        'units': row.units_count,
        'total_counted': row.total_counted,
        'variance': row.variance,
        'previous_stock': row.previous_stock,
        'new_stock': row.new_stock,
        'needs_recount': row.needs_recount,
        'status': row.status.value,
        'time_of_day': row.time_of_day.value,
    }


def get_stock_count(db: Session, *, log_id: str) -> dict:
    log = db.get(InventoryLog, log_id)
    if log is None:
        raise LookupError('Stock count not found')
    items = db.execute(
        select(InventoryLogItem).where(InventoryLogItem.log_id == log.id).order_by(InventoryLogItem.item_name.asc())
    ).scalars().all()
    return {
        'id': log.id,
        'date': log.log_date,
        'timestamp': log.timestamp,
        'status': log.status.value,
        'total_variance': log.total_variance,
        'employee_id': log.employee_id,
        'items': [_log_item_dict(row) for row in items],
    }


def list_stock_counts(db: Session, *, on_date: date | None = None) -> list[dict]:
    query = select(InventoryLog).order_by(InventoryLog.timestamp.desc(), InventoryLog.id.desc())
    if on_date is not None:
        query = query.where(InventoryLog.log_date == on_date)
    return [
        {
            'id': log.id,
            'date': log.log_date,
            'timestamp': log.timestamp,
            'status': log.status.value,
            'total_variance': log.total_variance,
            'employee_id': log.employee_id,
        }
        for log in db.execute(query).scalars().all()
    ]
