import asyncio

import pytest
from sqlalchemy import select

from laundryops.core.config import settings
from laundryops.core.enums import NotificationType, OrderStatus
from laundryops.db.session import AsyncSessionLocal
from laundryops.models.notification import Notification, UserPreferences
from laundryops.services import notifications
from laundryops.services.notifications import OrderEvent, emit_order_event, is_notification_enabled, notify


async def stored_notifications():
    async with AsyncSessionLocal() as db:
        res = await db.execute(select(Notification).order_by(Notification.id))
        return res.scalars().all()


class TestPreferenceGating:

    def test_missing_preferences_means_enabled(self):
        assert is_notification_enabled(NotificationType.ORDER_COMPLETED, None)

    def test_flag_mapping(self):
        prefs = UserPreferences(
            user_id=1,
            notify_new_orders=True,
            notify_order_complete=False,
            notify_low_stock=False,
            notify_marketing=True,
        )
        assert is_notification_enabled(NotificationType.ORDER_CREATED, prefs)
        assert is_notification_enabled(NotificationType.PAYMENT_RECEIVED, prefs)
        assert not is_notification_enabled(NotificationType.ORDER_READY, prefs)
        assert not is_notification_enabled(NotificationType.WORKSHOP_RETURNED, prefs)
        assert not is_notification_enabled(NotificationType.LOW_STOCK, prefs)
        assert is_notification_enabled(NotificationType.REMINDER, prefs)

    def test_unknown_type_defaults_to_enabled(self):
        prefs = UserPreferences(user_id=1, notify_order_complete=False)
        assert is_notification_enabled("SOMETHING_NEW", prefs)

    @pytest.mark.asyncio
    async def test_disabled_user_notification_skipped(self, db_session, seeded):
        created = await notify(db_session, 1, 7, NotificationType.ORDER_COMPLETED, "Done", "Order done")
        assert created is None
        assert await stored_notifications() == []

    @pytest.mark.asyncio
    async def test_enabled_user_notification_stored(self, db_session, seeded):
        created = await notify(
            db_session, 1, 7, NotificationType.ORDER_CREATED, "New", "New order", {"order_id": 5},
        )
        assert created is not None
        rows = await stored_notifications()
        assert len(rows) == 1
        assert rows[0].user_id == 7
        assert rows[0].data == {"order_id": 5}

    @pytest.mark.asyncio
    async def test_business_wide_ignores_preferences(self, db_session, seeded):
        created = await notify(db_session, 1, None, NotificationType.ORDER_COMPLETED, "Done", "Order done")
        assert created is not None
        assert created.user_id is None

    @pytest.mark.asyncio
    async def test_write_failure_is_swallowed(self, db_session, seeded):
        # title is NOT NULL, so the insert fails
        created = await notify(db_session, 1, None, NotificationType.SYSTEM, None, "broken")
        assert created is None


@pytest.mark.notifications
class TestOrderEvents:

    @pytest.mark.asyncio
    async def test_order_created_notification(self, seeded, create_order_factory):
        order = await create_order_factory()
        rows = await stored_notifications()
        assert [r.type for r in rows] == [NotificationType.ORDER_CREATED]
        assert rows[0].business_id == 1
        assert rows[0].user_id is None
        assert order["order_number"] in rows[0].message
        assert "Alice Brown" in rows[0].message

    @pytest.mark.asyncio
    async def test_status_events_and_customer_push(self, test_client, seeded, staff_headers,
                                                   create_order_factory, transition, push_outbox):
        order = await create_order_factory()
        await transition(order["id"], "PICKUP", "IN_PROGRESS")
        await transition(order["id"], "IN_PROGRESS", "READY")
        await test_client.post(f"/orders/{order['id']}/payments", json={"amount": 250}, headers=staff_headers)
        await transition(order["id"], "READY", "COMPLETED")

        types = [r.type for r in await stored_notifications()]
        assert types == [
            NotificationType.ORDER_CREATED,
            NotificationType.ORDER_PICKED_UP,
            NotificationType.ORDER_READY,
            NotificationType.PAYMENT_RECEIVED,
            NotificationType.ORDER_COMPLETED,
        ]

        assert [p["title"] for p in push_outbox] == ["Items Received", "Order Ready", "Order Completed"]
        assert all(p["to"] == "ExponentPushToken[alice]" for p in push_outbox)
        assert push_outbox[0]["data"]["order_number"] == order["order_number"]
        assert push_outbox[1]["data"]["status"] == "READY"

    @pytest.mark.asyncio
    async def test_no_push_without_token(self, seeded, create_order_factory, transition, push_outbox):
        order = await create_order_factory(customer_id=2)
        await transition(order["id"], "PICKUP", "IN_PROGRESS")
        assert push_outbox == []
        types = [r.type for r in await stored_notifications()]
        assert NotificationType.ORDER_PICKED_UP in types

    @pytest.mark.asyncio
    async def test_driver_delivery_emits_delivered(self, test_client, seeded, create_order_factory,
                                                   transition, staff_headers, driver_headers):
        order = await create_order_factory()
        await test_client.post(f"/orders/{order['id']}/assign-driver", json={"driver_id": 1},
                               headers=staff_headers)
        await transition(order["id"], "PICKUP", "IN_PROGRESS")
        await transition(order["id"], "IN_PROGRESS", "READY")
        await test_client.post(f"/delivery/orders/{order['id']}/deliver", headers=driver_headers)

        types = [r.type for r in await stored_notifications()]
        assert types[-1] == NotificationType.ORDER_DELIVERED

    @pytest.mark.asyncio
    async def test_cancel_and_workshop_return_events(self, test_client, seeded, staff_headers,
                                                     create_order_factory, transition, push_outbox):
        order = await create_order_factory()
        await transition(order["id"], "PICKUP", "IN_PROGRESS")
        item_id = order["items"][0]["id"]
        await test_client.post(f"/orders/{order['id']}/items/workshop", json={"item_ids": [item_id]},
                               headers=staff_headers)
        await test_client.patch(f"/workshop/{item_id}", json={"action": "mark_returned"}, headers=staff_headers)
        await test_client.post(f"/orders/{order['id']}/cancel", json={}, headers=staff_headers)

        rows = await stored_notifications()
        assert [r.type for r in rows][-2:] == [NotificationType.WORKSHOP_RETURNED, NotificationType.ORDER_CANCELLED]
        assert "Shirt" in rows[-2].message
        assert [p["title"] for p in push_outbox] == ["Items Received", "Order Cancelled"]

    @pytest.mark.asyncio
    async def test_emission_failure_does_not_fail_request(self, seeded, create_order_factory, transition,
                                                          monkeypatch):
        async def broken(db, event):
            raise RuntimeError("notification store down")

        monkeypatch.setattr(notifications, "_emit", broken)
        order = await create_order_factory()
        response = await transition(order["id"], "PICKUP", "IN_PROGRESS")
        assert response.status_code == 200
        assert await stored_notifications() == []

    @pytest.mark.asyncio
    async def test_emission_is_time_bounded(self, seeded, monkeypatch):
        async def slow(db, event):
            await asyncio.sleep(5)

        monkeypatch.setattr(notifications, "_emit", slow)
        monkeypatch.setattr(settings, "NOTIFICATION_TIMEOUT", 0.05)
        event = OrderEvent(
            business_id=1, order_id=1, order_number="DOW-260101-0001", customer_id=1,
            status=OrderStatus.READY, notification_type=NotificationType.ORDER_READY,
        )
        await asyncio.wait_for(emit_order_event(event), timeout=2)

    @pytest.mark.asyncio
    async def test_push_queue_failure_is_swallowed(self, seeded, create_order_factory, transition,
                                                   monkeypatch):
        class BrokenTask:
            def delay(self, payload):
                raise ConnectionError("broker unreachable")

        monkeypatch.setattr(notifications.tasks, "dispatch_customer_push", BrokenTask())
        order = await create_order_factory()
        response = await transition(order["id"], "PICKUP", "IN_PROGRESS")
        assert response.status_code == 200
