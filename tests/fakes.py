from __future__ import annotations

import threading
from datetime import datetime

from ridemarket.services.listing_store import (
    STORE_ERROR,
    UNIQUE_VIOLATION,
    ListingStore,
    StoreResult,
)

_UNIQUE_KEYS = {
    "wishlists": ("user_id", "item_id"),
    "profiles": ("id",),
    "listings": ("id",),
}


class FakeListingStore(ListingStore):
    """In-memory store with the same uniqueness rules as the real tables."""

    def __init__(self):
        self.tables = {"listings": [], "profiles": [], "wishlists": []}
        self.lock = threading.Lock()
        self.next_id = 1
        self.fail: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.insert_barrier: threading.Barrier | None = None
        self.hooks: dict[str, callable] = {}

    def seed(self, table: str, **row) -> dict:
        with self.lock:
            if table == "wishlists" and "id" not in row:
                row["id"] = self.next_id
                self.next_id += 1
            row.setdefault("created_at", datetime.utcnow().isoformat())
            self.tables[table].append(dict(row))
        return row

    def _enter(self, op: str, table: str):
        self.calls.append((op, table))
        hook = self.hooks.pop(f"{op}:{table}", None)
        if hook is not None:
            hook()
        if f"{op}:{table}" in self.fail:
            return StoreResult.failure(STORE_ERROR, f"{op} {table} failed")
        return None

    @staticmethod
    def _matches(row, eq=None, in_=None):
        for key, value in (eq or {}).items():
            if row.get(key) != value:
                return False
        for key, values in (in_ or {}).items():
            if row.get(key) not in set(values):
                return False
        return True

    def select(self, table, *, eq=None, in_=None, contains=None, gte=None, lte=None, order_by=None, descending=False, limit=None):
        failed = self._enter("select", table)
        if failed is not None:
            return failed
        with self.lock:
            rows = [dict(r) for r in self.tables[table] if self._matches(r, eq, in_)]
        for key, needle in (contains or {}).items():
            rows = [r for r in rows if str(needle).lower() in str(r.get(key) or "").lower()]
        for key, value in (gte or {}).items():
            rows = [r for r in rows if r.get(key) is not None and r[key] >= value]
        for key, value in (lte or {}).items():
            rows = [r for r in rows if r.get(key) is not None and r[key] <= value]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
        if limit is not None:
            rows = rows[:limit]
        return StoreResult(rows=rows)

    def insert(self, table, values):
        failed = self._enter("insert", table)
        if failed is not None:
            return failed
        if self.insert_barrier is not None:
            self.insert_barrier.wait(timeout=5)
        with self.lock:
            keys = _UNIQUE_KEYS[table]
            if all(k in values for k in keys):
                for row in self.tables[table]:
                    if all(row.get(k) == values[k] for k in keys):
                        return StoreResult.failure(UNIQUE_VIOLATION, "duplicate key value violates unique constraint")
            row = dict(values)
            if table == "wishlists":
                row.setdefault("id", self.next_id)
                self.next_id += 1
            row.setdefault("created_at", datetime.utcnow().isoformat())
            self.tables[table].append(row)
            return StoreResult(rows=[dict(row)])

    def update(self, table, values, *, eq):
        failed = self._enter("update", table)
        if failed is not None:
            return failed
        with self.lock:
            out = []
            for row in self.tables[table]:
                if self._matches(row, eq):
                    row.update(values)
                    out.append(dict(row))
            return StoreResult(rows=out)

    def delete(self, table, *, eq):
        failed = self._enter("delete", table)
        if failed is not None:
            return failed
        with self.lock:
            keep, gone = [], []
            for row in self.tables[table]:
                (gone if self._matches(row, eq) else keep).append(row)
            self.tables[table] = keep
            return StoreResult(rows=[dict(r) for r in gone])

    def upsert(self, table, values, *, on_conflict="id", ignore_duplicates=True):
        failed = self._enter("upsert", table)
        if failed is not None:
            return failed
        with self.lock:
            existing = [r for r in self.tables[table] if r.get(on_conflict) == values.get(on_conflict)]
            if existing:
                if not ignore_duplicates:
                    existing[0].update(values)
                return StoreResult(rows=[dict(existing[0])])
            row = dict(values)
            self.tables[table].append(row)
            return StoreResult(rows=[dict(row)])


def listing_row(listing_id: str, user_id: str = "seller-1", **extra) -> dict:
    row = {
        "id": listing_id,
        "user_id": user_id,
        "title": f"Bike {listing_id}",
        "description": "",
        "category": "bikes",
        "price": 1000.0,
        "image_url": f"{listing_id}.jpg",
    }
    row.update(extra)
    return row
