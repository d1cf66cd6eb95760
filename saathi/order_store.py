from __future__ import annotations

import json
import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from .models import PENDING_STATUSES, Order

logger = logging.getLogger("saathi.orders")

IMMUTABLE_FIELDS = {"id", "tracking_id", "created_at"}


class DuplicateTrackingIdError(ValueError):
    """Raised when an order is created with a tracking code that already exists."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStore:
    """Order storage keyed by id with a tracking-code index; JSON-file backed when a path is set."""

    def __init__(self, path: Optional[Path] = None, clock: Callable[[], datetime] = utcnow) -> None:
        """Purpose: Initialize the order store and hydrate from disk if available.
        Inputs/Outputs: Inputs are an optional JSON file path and a clock; no return.
        Side Effects / State: Loads orders into memory; creates the parent directory.
        Dependencies: Calls _load; relies on the Order model for validation.
        Failure Modes: A corrupt JSON file is logged and leaves an empty store.
        If Removed: No order intent can read or write orders.
        Testing Notes: Create orders, rebuild the store on the same path, and compare.
        """
        # Every public method takes the lock, so each call is atomic.
        self._path = path
        self._clock = clock
        self._lock = threading.RLock()
        self._orders: Dict[str, Order] = {}
        self._by_tracking: Dict[str, str] = {}
        self._load()

    def _load(self) -> None:
        """Purpose: Load persisted orders from disk into memory.
        Inputs/Outputs: Reads from self._path; no return value.
        Side Effects / State: Populates _orders and the tracking index.
        Dependencies: Uses json.loads and Order validation.
        Failure Modes: Missing file or JSONDecodeError results in an empty store.
        If Removed: Orders are lost on every restart.
        Testing Notes: Corrupt JSON should not crash; valid JSON should hydrate the store.
        """
        if not self._path or not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning("orders path=%s route=corrupt_file", self._path)
            return
        for raw in data.get("orders", []):
            order = Order.model_validate(raw)
            self._orders[order.id] = order
            self._by_tracking[order.tracking_id.lower()] = order.id

    def _persist(self) -> None:
        """Write all orders to disk; a no-op for in-memory stores. IO errors propagate."""
        if not self._path:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"orders": [order.model_dump(mode="json") for order in self._orders.values()]}
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp_path.replace(self._path)

    def exists(self, tracking_id: str) -> bool:
        with self._lock:
            return tracking_id.lower() in self._by_tracking

    def create(self, fields: Mapping[str, Any]) -> Order:
        """Purpose: Persist a new order built from the given fields.
        Inputs/Outputs: Input is a field mapping including tracking_id; output is the Order.
        Side Effects / State: Adds the order to memory and writes the file.
        Dependencies: Uses Order validation and _persist.
        Failure Modes: Raises DuplicateTrackingIdError for a reused tracking code and
            pydantic ValidationError for invalid fields.
        If Removed: create_order cannot save anything.
        Testing Notes: Creating the same tracking code twice must raise.
        """
        with self._lock:
            tracking_id = str(fields["tracking_id"])
            if tracking_id.lower() in self._by_tracking:
                raise DuplicateTrackingIdError(tracking_id)
            now = self._clock()
            data = dict(fields)
            data.setdefault("id", uuid.uuid4().hex)
            data.setdefault("created_at", now)
            data.setdefault("updated_at", data["created_at"])
            order = Order.model_validate(data)
            self._orders[order.id] = order
            self._by_tracking[tracking_id.lower()] = order.id
            self._persist()
            logger.info("orders op=create tracking_id=%s", tracking_id)
            return order

    def find_by_id(self, order_id: str) -> Optional[Order]:
        with self._lock:
            return self._orders.get(order_id)

    def find_by_tracking_code(self, tracking_id: str) -> Optional[Order]:
        """Look up an order by tracking code, ignoring case as transcripts often mangle it."""
        with self._lock:
            order_id = self._by_tracking.get(tracking_id.lower())
            return self._orders.get(order_id) if order_id else None

    def find_earliest_pending(self) -> Optional[Order]:
        """Purpose: Return the next order to pick up.
        Inputs/Outputs: No inputs; output is an Order or None.
        Side Effects / State: None.
        Dependencies: Uses PENDING_STATUSES.
        Failure Modes: None; returns None when no order is pending.
        If Removed: next_pickup has nothing to report.
        Testing Notes: Orders without a pickup time come after scheduled ones, by creation.
        """
        with self._lock:
            pending = [order for order in self._orders.values() if order.status in PENDING_STATUSES]
        if not pending:
            return None
        return min(
            pending,
            key=lambda order: (
                order.pickup_time is None,
                _as_utc(order.pickup_time) if order.pickup_time else order.created_at,
                order.created_at,
            ),
        )

    def find_recent(self, limit: int = 10) -> List[Order]:
        with self._lock:
            orders = sorted(self._orders.values(), key=lambda order: order.created_at, reverse=True)
        return orders[:limit]

    def find_created_between(self, start: datetime, end: datetime) -> List[Order]:
        """Orders with start <= created_at < end, oldest first."""
        with self._lock:
            orders = [order for order in self._orders.values() if start <= order.created_at < end]
        return sorted(orders, key=lambda order: order.created_at)

    def update_by_tracking_code(self, tracking_id: str, patch: Mapping[str, Any]) -> Optional[Order]:
        with self._lock:
            order_id = self._by_tracking.get(tracking_id.lower())
            if not order_id:
                return None
            return self._apply(order_id, patch)

    def update_by_id(self, order_id: str, patch: Mapping[str, Any]) -> Optional[Order]:
        with self._lock:
            if order_id not in self._orders:
                return None
            return self._apply(order_id, patch)

    def _apply(self, order_id: str, patch: Mapping[str, Any]) -> Order:
        """Purpose: Apply a field patch to an order and persist it.
        Inputs/Outputs: Inputs are an existing order id and patch; output is the new Order.
        Side Effects / State: Replaces the stored order and writes the file.
        Dependencies: Caller must hold the lock; uses Order validation.
        Failure Modes: Patches to id, tracking_id, or created_at are ignored.
        If Removed: No update or cancel path can change an order.
        Testing Notes: Verify updated_at moves and tracking_id never changes.
        """
        current = self._orders[order_id]
        changes = {key: value for key, value in patch.items() if key not in IMMUTABLE_FIELDS}
        data = current.model_dump()
        data.update(changes)
        data["updated_at"] = self._clock()
        order = Order.model_validate(data)
        self._orders[order_id] = order
        self._persist()
        logger.info("orders op=update tracking_id=%s fields=%s", order.tracking_id, sorted(changes))
        return order

    def delete_by_id(self, order_id: str) -> Dict[str, bool]:
        with self._lock:
            order = self._orders.pop(order_id, None)
            if order is None:
                return {"success": False}
            self._by_tracking.pop(order.tracking_id.lower(), None)
            self._persist()
            logger.info("orders op=delete tracking_id=%s", order.tracking_id)
            return {"success": True}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
