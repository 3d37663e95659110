"""Table-scoped access to listings, profiles and wishlist entries.

Every call is one store round trip and returns a ``StoreResult``; errors are
values, so call sites decide how to log and what to tell the user.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ridemarket.extensions import db
from ridemarket.models import Listing, Profile, WishlistEntry

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "UNIQUE_VIOLATION"
CONSTRAINT_VIOLATION = "CONSTRAINT_VIOLATION"
NOT_FOUND = "NOT_FOUND"
UNKNOWN_TABLE = "UNKNOWN_TABLE"
INVALID_COLUMN = "INVALID_COLUMN"
INVALID_REQUEST = "INVALID_REQUEST"
STORE_ERROR = "STORE_ERROR"


@dataclass
class StoreError:
    code: str
    message: str = ""

    @property
    def is_unique_violation(self) -> bool:
        return self.code == UNIQUE_VIOLATION


@dataclass
class StoreResult:
    rows: list[dict] = field(default_factory=list)
    error: StoreError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def first(self) -> dict | None:
        return self.rows[0] if self.rows else None

    @classmethod
    def failure(cls, code: str, message: str = "") -> "StoreResult":
        return cls(rows=[], error=StoreError(code=code, message=message))


class ListingStore:
    def select(
        self,
        table: str,
        *,
        eq: dict[str, Any] | None = None,
        in_: dict[str, Iterable[Any]] | None = None,
        contains: dict[str, str] | None = None,
        gte: dict[str, Any] | None = None,
        lte: dict[str, Any] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> StoreResult:
        raise NotImplementedError

    def select_one(self, table: str, *, eq: dict[str, Any]) -> StoreResult:
        res = self.select(table, eq=eq, limit=1)
        if res.ok and not res.rows:
            return StoreResult.failure(NOT_FOUND, f"no {table} row matches {sorted(eq)}")
        return res

    def insert(self, table: str, values: dict[str, Any]) -> StoreResult:
        raise NotImplementedError

    def update(self, table: str, values: dict[str, Any], *, eq: dict[str, Any]) -> StoreResult:
        raise NotImplementedError

    def delete(self, table: str, *, eq: dict[str, Any]) -> StoreResult:
        raise NotImplementedError

    def upsert(
        self,
        table: str,
        values: dict[str, Any],
        *,
        on_conflict: str = "id",
        ignore_duplicates: bool = True,
    ) -> StoreResult:
        raise NotImplementedError


TABLES = {
    "listings": Listing,
    "profiles": Profile,
    "wishlists": WishlistEntry,
}


def _integrity_code(exc: IntegrityError) -> str:
    msg = str(getattr(exc, "orig", exc) or "").lower()
    if "unique" in msg or "duplicate key" in msg:
        return UNIQUE_VIOLATION
    return CONSTRAINT_VIOLATION


class SqlListingStore(ListingStore):
    """``ListingStore`` over the Flask-SQLAlchemy session."""

    def __init__(self, tables: dict | None = None):
        self.tables = dict(tables or TABLES)

    def _model(self, table: str):
        model = self.tables.get(table)
        if model is None:
            raise LookupError(f"unknown table: {table}")
        return model

    def _column(self, model, name: str):
        col = model.__table__.c.get(name)
        if col is None:
            raise KeyError(name)
        return col

    def _clean_values(self, model, values: dict[str, Any]) -> dict[str, Any]:
        unknown = [k for k in values if model.__table__.c.get(k) is None]
        if unknown:
            raise KeyError(", ".join(sorted(unknown)))
        return dict(values)

    def _apply_eq(self, q, model, eq: dict[str, Any] | None):
        for name, value in (eq or {}).items():
            q = q.filter(self._column(model, name) == value)
        return q

    def _rollback(self) -> None:
        try:
            db.session.rollback()
        except SQLAlchemyError as e:
            logger.debug("store_rollback_failed err=%s", e)

    def select(
        self,
        table: str,
        *,
        eq=None,
        in_=None,
        contains=None,
        gte=None,
        lte=None,
        order_by=None,
        descending=False,
        limit=None,
    ) -> StoreResult:
        try:
            model = self._model(table)
            q = self._apply_eq(db.session.query(model), model, eq)
            for name, values in (in_ or {}).items():
                values = list(values)
                if not values:
                    return StoreResult(rows=[])
                q = q.filter(self._column(model, name).in_(values))
            for name, needle in (contains or {}).items():
                escaped = str(needle).replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
                q = q.filter(self._column(model, name).ilike(f"%{escaped}%", escape="\\"))
            for name, value in (gte or {}).items():
                q = q.filter(self._column(model, name) >= value)
            for name, value in (lte or {}).items():
                q = q.filter(self._column(model, name) <= value)
            if order_by:
                col = self._column(model, order_by)
                q = q.order_by(col.desc() if descending else col.asc())
            if limit is not None:
                q = q.limit(max(0, int(limit)))
            return StoreResult(rows=[row.to_dict() for row in q.all()])
        except LookupError as e:
            return StoreResult.failure(UNKNOWN_TABLE, str(e))
        except KeyError as e:
            return StoreResult.failure(INVALID_COLUMN, f"unknown column: {e.args[0]}")
        except SQLAlchemyError as e:
            self._rollback()
            logger.warning("store_select_failed table=%s err=%s", table, e)
            return StoreResult.failure(STORE_ERROR, str(e))

    def insert(self, table: str, values: dict[str, Any]) -> StoreResult:
        try:
            model = self._model(table)
            row = model(**self._clean_values(model, values))
            db.session.add(row)
            db.session.commit()
            return StoreResult(rows=[row.to_dict()])
        except LookupError as e:
            return StoreResult.failure(UNKNOWN_TABLE, str(e))
        except KeyError as e:
            return StoreResult.failure(INVALID_COLUMN, f"unknown column: {e.args[0]}")
        except IntegrityError as e:
            self._rollback()
            return StoreResult.failure(_integrity_code(e), str(getattr(e, "orig", e)))
        except SQLAlchemyError as e:
            self._rollback()
            logger.warning("store_insert_failed table=%s err=%s", table, e)
            return StoreResult.failure(STORE_ERROR, str(e))

    def update(self, table: str, values: dict[str, Any], *, eq: dict[str, Any]) -> StoreResult:
        if not eq:
            return StoreResult.failure(INVALID_REQUEST, "update requires a filter")
        try:
            model = self._model(table)
            clean = self._clean_values(model, values)
            rows = self._apply_eq(db.session.query(model), model, eq).all()
            for row in rows:
                for name, value in clean.items():
                    setattr(row, name, value)
            db.session.commit()
            return StoreResult(rows=[row.to_dict() for row in rows])
        except LookupError as e:
            return StoreResult.failure(UNKNOWN_TABLE, str(e))
        except KeyError as e:
            return StoreResult.failure(INVALID_COLUMN, f"unknown column: {e.args[0]}")
        except IntegrityError as e:
            self._rollback()
            return StoreResult.failure(_integrity_code(e), str(getattr(e, "orig", e)))
        except SQLAlchemyError as e:
            self._rollback()
            logger.warning("store_update_failed table=%s err=%s", table, e)
            return StoreResult.failure(STORE_ERROR, str(e))

    def delete(self, table: str, *, eq: dict[str, Any]) -> StoreResult:
        if not eq:
            return StoreResult.failure(INVALID_REQUEST, "delete requires a filter")
        try:
            model = self._model(table)
            rows = self._apply_eq(db.session.query(model), model, eq).all()
            payload = [row.to_dict() for row in rows]
            for row in rows:
                db.session.delete(row)
            db.session.commit()
            return StoreResult(rows=payload)
        except LookupError as e:
            return StoreResult.failure(UNKNOWN_TABLE, str(e))
        except KeyError as e:
            return StoreResult.failure(INVALID_COLUMN, f"unknown column: {e.args[0]}")
        except SQLAlchemyError as e:
            self._rollback()
            logger.warning("store_delete_failed table=%s err=%s", table, e)
            return StoreResult.failure(STORE_ERROR, str(e))

    def upsert(
        self,
        table: str,
        values: dict[str, Any],
        *,
        on_conflict: str = "id",
        ignore_duplicates: bool = True,
    ) -> StoreResult:
        try:
            model = self._model(table)
            clean = self._clean_values(model, values)
            if on_conflict not in clean:
                return StoreResult.failure(INVALID_REQUEST, f"upsert requires {on_conflict}")
            dialect = db.session.get_bind().dialect.name
            if dialect in ("sqlite", "postgresql"):
                insert = sqlite.insert if dialect == "sqlite" else postgresql.insert
                stmt = insert(model.__table__).values(**clean)
                if ignore_duplicates:
                    stmt = stmt.on_conflict_do_nothing(index_elements=[on_conflict])
                else:
                    updates = {k: v for k, v in clean.items() if k != on_conflict}
                    stmt = stmt.on_conflict_do_update(index_elements=[on_conflict], set_=updates)
                db.session.execute(stmt)
                db.session.commit()
            else:
                try:
                    db.session.add(model(**clean))
                    db.session.commit()
                except IntegrityError:
                    self._rollback()
                    if not ignore_duplicates:
                        return self.update(
                            table,
                            {k: v for k, v in clean.items() if k != on_conflict},
                            eq={on_conflict: clean[on_conflict]},
                        )
            return self.select(table, eq={on_conflict: clean[on_conflict]}, limit=1)
        except LookupError as e:
            return StoreResult.failure(UNKNOWN_TABLE, str(e))
        except KeyError as e:
            return StoreResult.failure(INVALID_COLUMN, f"unknown column: {e.args[0]}")
        except IntegrityError as e:
            self._rollback()
            return StoreResult.failure(_integrity_code(e), str(getattr(e, "orig", e)))
        except SQLAlchemyError as e:
            self._rollback()
            logger.warning("store_upsert_failed table=%s err=%s", table, e)
            return StoreResult.failure(STORE_ERROR, str(e))
