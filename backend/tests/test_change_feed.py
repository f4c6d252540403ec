"""
Change feed tests.

Subscribers see an event only after the transaction that produced it
commits; rolled-back work is never observed.
"""

import threading

import pytest

from stockroom.extensions import db
from stockroom.models import RoleChangeRequest, REQUEST_PENDING
from stockroom.services import change_feed, inventory_service, notification_service, role_request_service


@pytest.fixture
def subscription():
    sub = change_feed.subscribe()
    yield sub
    sub.close()


class TestDelivery:

    def test_mutation_delivered_after_commit(self, widget, manager):
        with change_feed.subscribe(lambda ev: ev.collection == "stock_history") as sub:
            inventory_service.add_quantity(widget.id, 2, manager)
            events = sub.drain()

        assert len(events) == 1
        assert events[0].action == "created"
        assert events[0].payload["change"] == "+2"
        assert events[0].payload["quantity_after"] == 12

    def test_predicate_filters(self, widget, manager):
        with change_feed.subscribe(lambda ev: ev.collection == "role_change_requests") as sub:
            inventory_service.add_quantity(widget.id, 2, manager)
            assert sub.drain() == []

    def test_rollback_discards_events(self, app, subscription):
        db.session.connection()
        change_feed.record_change("product_cells", "updated", 1)
        db.session.rollback()
        db.session.commit()

        assert subscription.drain() == []

    def test_failed_operation_publishes_nothing(self, viewer, subscription, monkeypatch):
        first = role_request_service.submit_request(viewer, "manager")
        first_id = first.id
        subscription.drain()

        def _fail(request):
            raise RuntimeError("notification store unavailable")

        monkeypatch.setattr(notification_service, "notify_admins_of_request", _fail)
        with pytest.raises(RuntimeError):
            role_request_service.submit_request(viewer, "admin")

        # The supersede of the first request was rolled back with the rest
        assert subscription.drain() == []
        assert db.session.get(RoleChangeRequest, first_id).status == REQUEST_PENDING

    def test_blocking_consumer(self, widget, manager, subscription):
        received = []

        def consume():
            for ev in subscription:
                received.append(ev)
                if ev.collection == "stock_history":
                    return

        consumer = threading.Thread(target=consume)
        consumer.start()
        inventory_service.reduce_quantity(widget.id, 1, manager)
        consumer.join(timeout=5)

        assert not consumer.is_alive()
        assert any(ev.payload.get("change") == "-1" for ev in received)

    def test_closed_subscription_receives_nothing(self, widget, manager):
        sub = change_feed.subscribe()
        sub.close()
        inventory_service.add_quantity(widget.id, 1, manager)

        assert sub.get(timeout=0.01) is None
        assert list(sub) == []
