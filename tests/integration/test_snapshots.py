"""
Integration tests for snapshot feeds (polling mode, no Redis).
"""

import pytest

from pos.exceptions import ValidationError
from pos.services.sales_service import process_sale
from pos.services.snapshot_service import CollectionFeed


def test_first_emission_is_current_state(session, user1, product_a):
    with CollectionFeed(user1.id, 'products', poll_interval=0).subscribe() as subscription:
        snapshot = next(subscription)
    assert [p['id'] for p in snapshot] == [product_a.id]
    assert snapshot[0]['stock'] == 5


def test_emits_again_after_a_change(session, user1, product_a):
    user_id, product_id = user1.id, product_a.id
    subscription = CollectionFeed(user_id, 'products', poll_interval=0).subscribe()
    next(subscription)

    process_sale(session, user_id, [{'id': product_id, 'quantity': 2}], 'efectivo')

    snapshot = next(subscription)
    assert snapshot[0]['stock'] == 3
    subscription.close()


def test_closed_subscription_stops(session, user1):
    subscription = CollectionFeed(user1.id, 'sales', poll_interval=0).subscribe()
    assert next(subscription) == []
    subscription.close()
    with pytest.raises(StopIteration):
        next(subscription)


def test_resubscribing_restarts_from_current_state(session, user1, product_a):
    feed = CollectionFeed(user1.id, 'stock_movements', poll_interval=0)
    first = feed.subscribe()
    assert next(first) == []
    first.close()

    process_sale(session, user1.id, [{'id': product_a.id, 'quantity': 1}], 'efectivo')

    second = feed.subscribe()
    movements = next(second)
    second.close()
    assert [m['quantity'] for m in movements] == [-1]


def test_feeds_are_user_scoped(session, user1, user2, product_a):
    with CollectionFeed(user2.id, 'products', poll_interval=0).subscribe() as subscription:
        assert next(subscription) == []


def test_unknown_collection(user1):
    with pytest.raises(ValidationError):
        CollectionFeed(user1.id, 'customers')
