"""Per-session cache of a principal's favorited listings.

``WishlistSync`` owns the cache for one session. It reloads from the store on
every sign-in or sign-out event, so one principal's favorites are never seen
by the next. ``WishlistSessionRegistry`` keeps one sync object per session
key for the web layer and reloads it on page-level reads, so writes from
other sessions and deleted listings show up on the next page.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ridemarket.integrations.identity import (
    AuthEvent,
    IdentityProvider,
    Principal,
    SessionIdentityProvider,
    Subscription,
)
from ridemarket.services.listing_store import ListingStore
from ridemarket.services.records import ListingRecord, RecordValidationError, WishlistEntryRecord

logger = logging.getLogger(__name__)


class WishlistState(str, Enum):
    UNINITIALIZED = "uninitialized"
    ANONYMOUS = "anonymous"
    LOADING = "loading"
    READY = "ready"
    DISPOSED = "disposed"


@dataclass(frozen=True)
class WishlistItem:
    entry: WishlistEntryRecord
    listing: Optional[ListingRecord] = None

    @property
    def item_id(self) -> str:
        return self.entry.item_id


class WishlistSync:
    def __init__(self, identity: IdentityProvider, store: ListingStore):
        self.identity = identity
        self.store = store

        self._lock = threading.RLock()
        self._state = WishlistState.UNINITIALIZED
        self._owner_id: Optional[str] = None
        self._items: list[WishlistItem] = []
        self._generation = 0
        self._subscription: Optional[Subscription] = None

        self.load_error: Optional[str] = None
        self.toggle_error: Optional[str] = None

    @property
    def state(self) -> WishlistState:
        with self._lock:
            return self._state

    @property
    def owner_id(self) -> Optional[str]:
        with self._lock:
            return self._owner_id

    # lifecycle

    def start(self) -> "WishlistSync":
        with self._lock:
            if self._state == WishlistState.DISPOSED:
                raise RuntimeError("wishlist sync already disposed")
            if self._subscription is None:
                self._subscription = self.identity.on_auth_state_change(self._on_auth_event)
        self.reload()
        return self

    def ensure_started(self) -> None:
        with self._lock:
            pending = self._state == WishlistState.UNINITIALIZED
        if pending:
            self.start()

    def dispose(self) -> None:
        with self._lock:
            if self._state == WishlistState.DISPOSED:
                return
            self._state = WishlistState.DISPOSED
            self._generation += 1
            self._items = []
            self._owner_id = None
            sub, self._subscription = self._subscription, None
        if sub is not None:
            sub.unsubscribe()

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    def _on_auth_event(self, event: AuthEvent, principal: Optional[Principal]) -> None:
        logger.info("wishlist_auth_event event=%s", event.value)
        self.reload()

    # loading

    def reload(self) -> None:
        principal = self.identity.get_current_principal()
        with self._lock:
            if self._state == WishlistState.DISPOSED:
                return
            self._generation += 1
            generation = self._generation
            self._items = []
            self.load_error = None
            if principal is None:
                self._owner_id = None
                self._state = WishlistState.ANONYMOUS
                return
            self._owner_id = principal.id
            self._state = WishlistState.LOADING

        items, error = self._load(principal.id)

        with self._lock:
            if generation != self._generation or self._state == WishlistState.DISPOSED:
                logger.info("wishlist_load_discarded principal=%s", principal.id)
                return
            self._items = items
            self.load_error = error
            self._state = WishlistState.READY

    def _load(self, user_id: str) -> tuple[list[WishlistItem], Optional[str]]:
        try:
            res = self.store.select("wishlists", eq={"user_id": user_id}, order_by="created_at", descending=True)
            if not res.ok:
                logger.warning("wishlist_load_failed principal=%s code=%s", user_id, res.error.code)
                return [], res.error.message or "Could not load wishlist"

            entries: list[WishlistEntryRecord] = []
            seen: set[str] = set()
            for row in res.rows:
                try:
                    entry = WishlistEntryRecord.from_row(row)
                except RecordValidationError as e:
                    logger.warning("wishlist_row_invalid principal=%s err=%s", user_id, e)
                    continue
                if entry.item_id in seen:
                    continue
                seen.add(entry.item_id)
                entries.append(entry)

            listings: dict[str, ListingRecord] = {}
            if entries:
                lres = self.store.select("listings", in_={"id": [e.item_id for e in entries]})
                if not lres.ok:
                    logger.warning("wishlist_listings_load_failed principal=%s code=%s", user_id, lres.error.code)
                    return [], lres.error.message or "Could not load wishlist"
                for row in lres.rows:
                    try:
                        rec = ListingRecord.from_row(row)
                    except RecordValidationError as e:
                        logger.warning("wishlist_listing_invalid principal=%s err=%s", user_id, e)
                        continue
                    listings[rec.id] = rec

            return [WishlistItem(entry=e, listing=listings.get(e.item_id)) for e in entries], None
        except Exception as e:
            logger.exception("wishlist_load_crashed principal=%s", user_id)
            return [], str(e)

    # queries

    def _has(self, listing_id: str) -> bool:
        return any(item.item_id == listing_id for item in self._items)

    def is_in_wishlist(self, listing_id: str) -> bool:
        with self._lock:
            if self._state != WishlistState.READY:
                return False
            return self._has(str(listing_id))

    def wishlist_ids(self) -> list[str]:
        with self._lock:
            return [item.item_id for item in self._items]

    @property
    def items(self) -> list[WishlistItem]:
        """Every cached entry, including ones whose listing is gone."""
        with self._lock:
            return list(self._items)

    @property
    def listings(self) -> list[ListingRecord]:
        with self._lock:
            return [item.listing for item in self._items if item.listing is not None]

    # mutation

    def toggle(self, listing_id: str) -> tuple[bool, Optional[str]]:
        """Flip membership of ``listing_id``. Returns ``(ok, error)`` for this call only."""
        ok, error = self._toggle(str(listing_id or "").strip())
        with self._lock:
            self.toggle_error = error
        return ok, error

    def toggle_wishlist(self, listing_id: str) -> bool:
        ok, _error = self.toggle(listing_id)
        return ok

    def _toggle(self, listing_id: str) -> tuple[bool, Optional[str]]:
        if not listing_id:
            return False, "Missing listing id"

        principal = self.identity.get_current_principal()
        if principal is None:
            return False, "Sign in to save favorites"

        with self._lock:
            if self._state == WishlistState.DISPOSED:
                return False, "Wishlist session has ended"
            stale = self._owner_id != principal.id or self._state != WishlistState.READY
        if stale:
            self.reload()

        with self._lock:
            if self._state != WishlistState.READY or self._owner_id != principal.id:
                return False, "Wishlist is not ready"
            member = self._has(listing_id)
            generation = self._generation

        if member:
            return self._remove(principal, listing_id, generation)
        return self._add(principal, listing_id, generation)

    def _remove(self, principal: Principal, listing_id: str, generation: int) -> tuple[bool, Optional[str]]:
        res = self.store.delete("wishlists", eq={"user_id": principal.id, "item_id": listing_id})
        if not res.ok:
            logger.warning("wishlist_remove_failed principal=%s item=%s code=%s", principal.id, listing_id, res.error.code)
            return False, res.error.message or "Could not update wishlist"
        with self._lock:
            if generation == self._generation:
                self._items = [item for item in self._items if item.item_id != listing_id]
        return True, None

    def _add(self, principal: Principal, listing_id: str, generation: int) -> tuple[bool, Optional[str]]:
        res = self.store.insert("wishlists", {"user_id": principal.id, "item_id": listing_id})
        row = res.first()
        if not res.ok:
            if not res.error.is_unique_violation:
                logger.warning("wishlist_add_failed principal=%s item=%s code=%s", principal.id, listing_id, res.error.code)
                return False, res.error.message or "Could not update wishlist"
            # Another toggle got there first; the entry exists, which is what we wanted.
            logger.info("wishlist_add_duplicate principal=%s item=%s", principal.id, listing_id)
            existing = self.store.select("wishlists", eq={"user_id": principal.id, "item_id": listing_id}, limit=1)
            row = existing.first() if existing.ok else None

        entry = WishlistEntryRecord(user_id=principal.id, item_id=listing_id)
        if row is not None:
            try:
                entry = WishlistEntryRecord.from_row(row)
            except RecordValidationError as e:
                logger.warning("wishlist_row_invalid principal=%s err=%s", principal.id, e)

        listing = self._fetch_listing(listing_id)
        with self._lock:
            if generation == self._generation and not self._has(listing_id):
                self._items = [WishlistItem(entry=entry, listing=listing)] + self._items
        return True, None

    def _fetch_listing(self, listing_id: str) -> Optional[ListingRecord]:
        res = self.store.select("listings", eq={"id": listing_id}, limit=1)
        if not res.ok:
            logger.info("wishlist_listing_fetch_failed item=%s code=%s", listing_id, res.error.code)
            return None
        row = res.first()
        if row is None:
            return None
        try:
            return ListingRecord.from_row(row)
        except RecordValidationError as e:
            logger.warning("wishlist_listing_invalid item=%s err=%s", listing_id, e)
            return None


@dataclass
class WishlistSession:
    identity: SessionIdentityProvider
    sync: WishlistSync


def session_key(principal: Principal) -> str:
    return principal.session_id or principal.id


class WishlistSessionRegistry:
    """Bounded LRU of live wishlist sessions.

    Sessions are keyed by the token's session id, falling back to the
    principal id. Evicted and signed-out sessions are disposed.
    """

    def __init__(self, store: ListingStore, max_sessions: int = 5000):
        self.store = store
        self.max_sessions = max(1, int(max_sessions))
        self._sessions: "OrderedDict[str, WishlistSession]" = OrderedDict()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get(self, key: str) -> Optional[WishlistSession]:
        with self._lock:
            return self._sessions.get(key)

    def bind(self, principal: Principal, *, refresh: bool = False) -> WishlistSync:
        """Return the session's sync object, started and bound to ``principal``.

        ``refresh`` reloads an existing session from the store so writes made
        by other sessions, and listings deleted since, are picked up.
        """
        key = session_key(principal)
        created = False
        evicted: list[WishlistSession] = []
        with self._lock:
            session = self._sessions.get(key)
            if session is None:
                identity = SessionIdentityProvider(principal)
                session = WishlistSession(identity=identity, sync=WishlistSync(identity, self.store))
                self._sessions[key] = session
                created = True
            else:
                self._sessions.move_to_end(key)
            while len(self._sessions) > self.max_sessions:
                _key, old = self._sessions.popitem(last=False)
                evicted.append(old)

        for old in evicted:
            old.sync.dispose()
        if evicted:
            logger.info("wishlist_sessions_evicted count=%s", len(evicted))

        session.identity.bind(principal)
        session.sync.ensure_started()
        if refresh and not created:
            session.sync.reload()
        return session.sync

    def sign_out(self, principal: Principal) -> bool:
        key = session_key(principal)
        with self._lock:
            session = self._sessions.pop(key, None)
        if session is None:
            return False
        session.identity.sign_out()
        session.sync.dispose()
        return True

    def dispose_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.sync.dispose()
