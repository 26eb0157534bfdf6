import asyncio

import pytest


@pytest.fixture
def assign(test_client, staff_headers):
    async def _assign(order_id, driver_id):
        return await test_client.post(
            f"/orders/{order_id}/assign-driver", json={"driver_id": driver_id}, headers=staff_headers,
        )

    return _assign


class TestDriverAssignment:

    @pytest.mark.asyncio
    async def test_assign_and_unassign(self, seeded, create_order_factory, assign):
        order = await create_order_factory()

        response = await assign(order["id"], 1)
        assert response.status_code == 200
        data = response.json()
        assert data["driver_id"] == 1
        assert data["assigned_at"] is not None
        assert data["status"] == "PICKUP"

        response = await assign(order["id"], None)
        assert response.status_code == 200
        assert response.json()["driver_id"] is None
        assert response.json()["assigned_at"] is None

    @pytest.mark.asyncio
    async def test_inactive_driver_rejected(self, seeded, create_order_factory, assign):
        order = await create_order_factory()
        assert (await assign(order["id"], 3)).status_code == 400

    @pytest.mark.asyncio
    async def test_foreign_driver_rejected(self, seeded, create_order_factory, assign):
        order = await create_order_factory()
        assert (await assign(order["id"], 4)).status_code == 400

    @pytest.mark.asyncio
    async def test_terminal_order_cannot_be_assigned(self, test_client, seeded, staff_headers,
                                                     create_order_factory, assign):
        order = await create_order_factory()
        await test_client.post(f"/orders/{order['id']}/cancel", json={}, headers=staff_headers)
        assert (await assign(order["id"], 1)).status_code == 400


class TestDriverWorkflow:

    @pytest.mark.asyncio
    async def test_only_assigned_driver_can_pick_up(self, test_client, seeded, create_order_factory, assign,
                                                    driver_headers, driver_2_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)

        response = await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_2_headers)
        assert response.status_code == 404

        response = await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "IN_PROGRESS"
        assert data["picked_up_at"] is not None

        response = await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_headers)
        assert response.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.concurrency
    async def test_racing_pickups_single_winner(self, test_client, seeded, staff_headers,
                                                create_order_factory, assign, driver_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)

        responses = await asyncio.gather(*[
            test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_headers)
            for _ in range(2)
        ])
        assert sorted(r.status_code for r in responses) == [200, 404]

        history = (await test_client.get(f"/orders/{order['id']}/history", headers=staff_headers)).json()
        assert len(history) == 1

    @pytest.mark.asyncio
    async def test_reassigned_driver_loses_access(self, test_client, seeded, create_order_factory, assign,
                                                  driver_headers, driver_2_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)
        await assign(order["id"], 2)

        response = await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_headers)
        assert response.status_code == 404
        response = await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_2_headers)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_deliver_from_in_progress_rejected(self, test_client, seeded, create_order_factory, assign,
                                                     driver_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)
        await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_headers)

        response = await test_client.post(f"/delivery/orders/{order['id']}/deliver", headers=driver_headers)
        assert response.status_code == 404

        response = await test_client.get(f"/delivery/orders/{order['id']}", headers=driver_headers)
        assert response.json()["status"] == "IN_PROGRESS"

    @pytest.mark.asyncio
    async def test_full_delivery_flow(self, test_client, seeded, staff_headers, create_order_factory, assign,
                                      transition, driver_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)
        await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=driver_headers)
        await transition(order["id"], "IN_PROGRESS", "READY")

        response = await test_client.post(
            f"/delivery/orders/{order['id']}/start-delivery", headers=driver_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "OUT_FOR_DELIVERY"

        response = await test_client.post(f"/delivery/orders/{order['id']}/deliver", headers=driver_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "COMPLETED"
        assert data["delivered_at"] is not None
        assert data["completed_date"] is not None
        assert all(item["status"] == "COMPLETED" for item in data["items"])

        history = (await test_client.get(f"/orders/{order['id']}/history", headers=staff_headers)).json()
        assert [h["to_status"] for h in history] == ["IN_PROGRESS", "READY", "OUT_FOR_DELIVERY", "COMPLETED"]
        assert history[-1]["changed_by"] == "Driver: Dan Driver"
        assert history[-1]["from_status"] == "OUT_FOR_DELIVERY"

    @pytest.mark.asyncio
    async def test_deliver_straight_from_ready(self, test_client, seeded, create_order_factory, assign,
                                               transition, driver_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)
        await transition(order["id"], "PICKUP", "IN_PROGRESS")
        await transition(order["id"], "IN_PROGRESS", "READY")

        response = await test_client.post(f"/delivery/orders/{order['id']}/deliver", headers=driver_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_start_delivery_requires_ready(self, test_client, seeded, create_order_factory, assign,
                                                 driver_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)
        response = await test_client.post(
            f"/delivery/orders/{order['id']}/start-delivery", headers=driver_headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_staff_token_rejected_on_driver_routes(self, test_client, seeded, staff_headers,
                                                         create_order_factory):
        order = await create_order_factory()
        response = await test_client.post(f"/delivery/orders/{order['id']}/pickup", headers=staff_headers)
        assert response.status_code == 403


class TestDriverViews:

    @pytest.mark.asyncio
    async def test_list_and_stats(self, test_client, seeded, create_order_factory, assign, transition,
                                  driver_headers, driver_2_headers):
        pickup_order = await create_order_factory()
        delivery_order = await create_order_factory()
        done_order = await create_order_factory()
        unassigned = await create_order_factory()
        for order in (pickup_order, delivery_order, done_order):
            await assign(order["id"], 1)
        for order in (delivery_order, done_order):
            await transition(order["id"], "PICKUP", "IN_PROGRESS")
            await transition(order["id"], "IN_PROGRESS", "READY")
        await test_client.post(f"/delivery/orders/{done_order['id']}/deliver", headers=driver_headers)

        listing = (await test_client.get("/delivery/orders", headers=driver_headers)).json()
        assert {o["id"] for o in listing} == {pickup_order["id"], delivery_order["id"], done_order["id"]}

        pickups = (await test_client.get("/delivery/orders?group=pickups", headers=driver_headers)).json()
        assert [o["id"] for o in pickups] == [pickup_order["id"]]

        deliveries = (await test_client.get("/delivery/orders?group=deliveries", headers=driver_headers)).json()
        assert [o["id"] for o in deliveries] == [delivery_order["id"]]

        stats = (await test_client.get("/delivery/orders/stats", headers=driver_headers)).json()
        assert stats == {
            "pending_pickups": 1,
            "pending_deliveries": 1,
            "completed_today": 1,
            "total_completed": 1,
        }

        response = await test_client.get(f"/delivery/orders/{unassigned['id']}", headers=driver_headers)
        assert response.status_code == 404
        assert (await test_client.get("/delivery/orders", headers=driver_2_headers)).json() == []

    @pytest.mark.asyncio
    async def test_invalid_group_rejected(self, test_client, seeded, driver_headers):
        response = await test_client.get("/delivery/orders?group=everything", headers=driver_headers)
        assert response.status_code == 422


class TestDoorstepItems:

    BLANKET = {"item_name": "Blanket", "service_name": "Wash", "quantity": 1, "unit_price": 120}

    @pytest.mark.asyncio
    async def test_items_added_and_order_picked_up(self, test_client, seeded, staff_headers,
                                                   create_order_factory, assign, driver_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)

        response = await test_client.post(
            f"/delivery/orders/{order['id']}/items", json={"items": [self.BLANKET]}, headers=driver_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "IN_PROGRESS"
        assert data["picked_up_at"] is not None
        assert data["total_amount"] == 370.0
        assert len(data["items"]) == 3
        assert data["items"][-1]["tag_number"] == f"{order['order_number']}-003"
        assert all(item["status"] == "IN_PROGRESS" for item in data["items"])

        history = (await test_client.get(f"/orders/{order['id']}/history", headers=staff_headers)).json()
        assert history[-1]["changed_by"] == "Driver: Dan Driver"
        assert history[-1]["notes"] == "Picked up by driver. 1 item(s) received."

    @pytest.mark.asyncio
    async def test_items_added_without_pickup(self, test_client, seeded, create_order_factory, assign,
                                              driver_headers):
        order = await create_order_factory(items=[])
        await assign(order["id"], 1)

        response = await test_client.post(
            f"/delivery/orders/{order['id']}/items",
            json={"items": [self.BLANKET], "mark_as_picked_up": False},
            headers=driver_headers,
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "PICKUP"
        assert data["total_amount"] == 120.0
        assert data["payment_status"] == "UNPAID"

    @pytest.mark.asyncio
    async def test_only_assigned_driver_at_pickup(self, test_client, seeded, create_order_factory, assign,
                                                  transition, driver_headers, driver_2_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)

        response = await test_client.post(
            f"/delivery/orders/{order['id']}/items", json={"items": [self.BLANKET]}, headers=driver_2_headers,
        )
        assert response.status_code == 404

        await transition(order["id"], "PICKUP", "IN_PROGRESS")
        response = await test_client.post(
            f"/delivery/orders/{order['id']}/items", json={"items": [self.BLANKET]}, headers=driver_headers,
        )
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_empty_item_list_rejected(self, test_client, seeded, create_order_factory, assign,
                                            driver_headers):
        order = await create_order_factory()
        await assign(order["id"], 1)
        response = await test_client.post(
            f"/delivery/orders/{order['id']}/items", json={"items": []}, headers=driver_headers,
        )
        assert response.status_code == 422
