from typing import List
from laundryops.models.order import Order, OrderItem, OrderStatusHistory, Payment
from laundryops.schemas.order import OrderOut, OrderItemOut, StatusHistoryOut
from laundryops.schemas.payment import PaymentOut, PaymentSummaryOut
from laundryops.schemas.principal import Actor
from laundryops.schemas.workshop import WorkshopItemOut
from laundryops.services.order_store import to_money
from laundryops.services.payments import derive_payment_status


def _item_fields(item: OrderItem) -> dict:
    return dict(
        id=item.id,
        order_id=item.order_id,
        tag_number=item.tag_number,
        item_name=item.item_name,
        service_name=item.service_name,
        quantity=item.quantity,
        unit_price=float(to_money(item.unit_price)),
        subtotal=float(to_money(item.subtotal)),
        status=item.status,
        sent_to_workshop=item.sent_to_workshop,
        workshop_partner_name=item.workshop_partner_name,
        workshop_sent_at=item.workshop_sent_at,
        workshop_returned_at=item.workshop_returned_at,
        workshop_notes=item.workshop_notes,
        color=item.color,
        brand=item.brand,
        notes=item.notes,
    )


def build_item_response(item: OrderItem) -> OrderItemOut:
    return OrderItemOut(**_item_fields(item))


def build_workshop_item_response(item: OrderItem, order: Order) -> WorkshopItemOut:
    return WorkshopItemOut(
        **_item_fields(item),
        order_number=order.order_number,
        order_status=order.status,
        priority=order.priority,
        store_id=order.store_id,
    )


def build_order_response(order: Order) -> OrderOut:
    total = to_money(order.total_amount)
    paid = to_money(order.paid_amount)
    return OrderOut(
        id=order.id,
        business_id=order.business_id,
        store_id=order.store_id,
        customer_id=order.customer_id,
        driver_id=order.driver_id,
        order_number=order.order_number,
        status=order.status,
        # read projections never trust a stale stored status
        payment_status=derive_payment_status(paid, total),
        priority=order.priority,
        total_amount=float(total),
        paid_amount=float(paid),
        due_amount=float(total - paid),
        pickup_date=order.pickup_date,
        delivery_date=order.delivery_date,
        assigned_at=order.assigned_at,
        picked_up_at=order.picked_up_at,
        delivered_at=order.delivered_at,
        completed_date=order.completed_date,
        notes=order.notes,
        items=[build_item_response(item) for item in order.items],
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


def build_history_response(entry: OrderStatusHistory) -> StatusHistoryOut:
    actor = Actor(kind=entry.actor_kind, id=entry.actor_id, name=entry.actor_name)
    return StatusHistoryOut(
        id=entry.id,
        from_status=entry.from_status,
        to_status=entry.to_status,
        changed_by=actor.label(),
        actor_kind=str(entry.actor_kind),
        actor_id=entry.actor_id,
        notes=entry.notes,
        created_at=entry.created_at,
    )


def build_payment_response(payment: Payment) -> PaymentOut:
    return PaymentOut(
        id=payment.id,
        amount=float(to_money(payment.amount)),
        mode=payment.mode,
        reference=payment.reference,
        notes=payment.notes,
        created_at=payment.created_at,
    )


def build_payment_summary(order: Order, payments: List[Payment]) -> PaymentSummaryOut:
    total = to_money(order.total_amount)
    paid = to_money(order.paid_amount)
    return PaymentSummaryOut(
        order_id=order.id,
        order_number=order.order_number,
        total_amount=float(total),
        paid_amount=float(paid),
        due_amount=float(total - paid),
        payment_status=derive_payment_status(paid, total),
        payments=[build_payment_response(p) for p in payments],
    )


def build_order_response_list(orders: list) -> list:
    return [build_order_response(order) for order in orders]


def build_history_response_list(entries: list) -> list:
    return [build_history_response(entry) for entry in entries]
