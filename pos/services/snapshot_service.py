"""
Snapshot feeds - real-time view of a user's collections.

A subscription is a lazy, infinite iterator of full-collection snapshots
(lists of dicts). The first item is the current state; after that an item
is produced only when the collection actually changed. Writers announce
changes over Redis pub/sub (see cache_service.invalidate_user_views); when
Redis is unavailable the feed falls back to polling.
"""
import hashlib
import json
import logging
import time
from typing import Callable, Dict, List, Optional

from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from pos import database
from pos.exceptions import NotAuthenticatedError, ValidationError
from pos.models import StockMovement
from pos.repositories import InventoryRepository, SaleRepository
from pos.services.cache_service import get_cache
from pos.services.transaction_service import config_value

logger = logging.getLogger(__name__)

MOVEMENTS_SNAPSHOT_LIMIT = 200


def _products(session: Session, user_id: int) -> List[dict]:
    return [p.to_dict() for p in InventoryRepository(session, user_id).list_active()]


def _sales(session: Session, user_id: int) -> List[dict]:
    return [s.to_dict() for s in SaleRepository(session, user_id).list()]


def _stock_movements(session: Session, user_id: int) -> List[dict]:
    movements = (
        session.query(StockMovement)
        .filter(StockMovement.user_id == user_id)
        .order_by(StockMovement.date.desc(), StockMovement.id.desc())
        .limit(MOVEMENTS_SNAPSHOT_LIMIT)
        .all()
    )
    return [m.to_dict() for m in movements]


LOADERS: Dict[str, Callable[[Session, int], List[dict]]] = {
    'products': _products,
    'sales': _sales,
    'stock_movements': _stock_movements,
}


def fingerprint(snapshot: List[dict]) -> str:
    payload = json.dumps(snapshot, sort_keys=True, default=str)
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()


class Subscription:
    """Iterator over snapshots of one collection; call close() to unsubscribe."""

    def __init__(self, feed: 'CollectionFeed'):
        self.feed = feed
        self.closed = False
        self._last_fingerprint: Optional[str] = None
        self._pubsub = feed.open_channel()

    def __iter__(self):
        return self

    def __next__(self) -> List[dict]:
        while not self.closed:
            snapshot = self.feed.load()
            current = fingerprint(snapshot)
            if current != self._last_fingerprint:
                self._last_fingerprint = current
                return snapshot
            self._wait()
        raise StopIteration

    def _wait(self) -> None:
        interval = self.feed.poll_interval
        if self._pubsub is not None:
            try:
                # Returns on the first notification or after the interval
                self._pubsub.get_message(timeout=interval)
                return
            except RedisError as e:
                logger.warning(f"[SNAPSHOT] Pub/sub failed, falling back to polling: {e}")
                self._close_channel()
        if interval:
            time.sleep(interval)

    def _close_channel(self) -> None:
        if self._pubsub is not None:
            try:
                self._pubsub.close()
            except RedisError as e:
                logger.debug(f"[SNAPSHOT] Error closing pub/sub: {e}")
            self._pubsub = None

    def close(self) -> None:
        self.closed = True
        self._close_channel()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class CollectionFeed:
    """
    Snapshot source for one user's collection ('products', 'sales' or 'stock_movements').

    Every snapshot is read through a fresh short-lived session, so it sees
    the latest committed state.
    """

    def __init__(self, user_id: int, collection: str, poll_interval: Optional[float] = None,
                 session_factory: Optional[Callable[[], Session]] = None):
        if not user_id:
            raise NotAuthenticatedError()
        if collection not in LOADERS:
            raise ValidationError(f'Colección desconocida: {collection}')
        self.user_id = user_id
        self.collection = collection
        if poll_interval is None:
            poll_interval = config_value('SNAPSHOT_POLL_INTERVAL', 2.0)
        self.poll_interval = poll_interval
        self.session_factory = session_factory or database.new_session

    def load(self) -> List[dict]:
        session = self.session_factory()
        try:
            return LOADERS[self.collection](session, self.user_id)
        finally:
            session.close()

    def open_channel(self):
        try:
            return get_cache().pubsub(self.user_id, self.collection)
        except RuntimeError:
            return None

    def subscribe(self) -> Subscription:
        return Subscription(self)
