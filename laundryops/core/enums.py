from enum import Enum


class PrincipalRole(str, Enum):
    OWNER = "owner"
    STAFF = "staff"
    DRIVER = "driver"
    CUSTOMER = "customer"

    def __str__(self):
        return self.value


class ActorKind(str, Enum):
    STAFF = "staff"
    DRIVER = "driver"
    CUSTOMER = "customer"
    SYSTEM = "system"

    def __str__(self):
        return self.value


class OrderStatus(str, Enum):
    PICKUP = "PICKUP"
    IN_PROGRESS = "IN_PROGRESS"
    AT_WORKSHOP = "AT_WORKSHOP"
    WORKSHOP_RETURNED = "WORKSHOP_RETURNED"
    READY = "READY"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    def __str__(self):
        return self.value

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.COMPLETED, OrderStatus.CANCELLED)


class ItemStatus(str, Enum):
    RECEIVED = "RECEIVED"
    IN_PROGRESS = "IN_PROGRESS"
    AT_WORKSHOP = "AT_WORKSHOP"
    WORKSHOP_RETURNED = "WORKSHOP_RETURNED"
    READY = "READY"
    COMPLETED = "COMPLETED"

    def __str__(self):
        return self.value


class PaymentStatus(str, Enum):
    UNPAID = "UNPAID"
    PARTIAL = "PARTIAL"
    PAID = "PAID"

    def __str__(self):
        return self.value


class PaymentMode(str, Enum):
    CASH = "CASH"
    CARD = "CARD"
    UPI = "UPI"
    BANK_TRANSFER = "BANK_TRANSFER"
    OTHER = "OTHER"

    def __str__(self):
        return self.value


class OrderPriority(str, Enum):
    NORMAL = "NORMAL"
    EXPRESS = "EXPRESS"

    def __str__(self):
        return self.value


class NotificationType(str, Enum):
    ORDER_CREATED = "ORDER_CREATED"
    ORDER_PICKED_UP = "ORDER_PICKED_UP"
    ORDER_READY = "ORDER_READY"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    ORDER_COMPLETED = "ORDER_COMPLETED"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    WORKSHOP_RETURNED = "WORKSHOP_RETURNED"
    NEW_CUSTOMER = "NEW_CUSTOMER"
    LOW_STOCK = "LOW_STOCK"
    SYSTEM = "SYSTEM"
    REMINDER = "REMINDER"

    def __str__(self):
        return self.value


class WorkshopTab(str, Enum):
    PROCESSING = "processing"
    READY = "ready"
    HISTORY = "history"

    def __str__(self):
        return self.value


class WorkshopAction(str, Enum):
    MARK_RETURNED = "mark_returned"
    MARK_READY = "mark_ready"
    RETURN_TO_STORE = "return_to_store"

    def __str__(self):
        return self.value


class AuditAction(str, Enum):
    CREATE_ORDER = "create_order"
    ADD_ITEMS = "add_items"
    CHANGE_STATUS = "change_status"
    CANCEL_ORDER = "cancel_order"
    ASSIGN_DRIVER = "assign_driver"
    SEND_TO_WORKSHOP = "send_to_workshop"
    WORKSHOP_ITEM = "workshop_item"
    RECORD_PAYMENT = "record_payment"
    DRIVER_PICKUP = "driver_pickup"
    DRIVER_START_DELIVERY = "driver_start_delivery"
    DRIVER_DELIVER = "driver_deliver"
    DRIVER_ADD_ITEMS = "driver_add_items"
    CUSTOMER_CANCEL = "customer_cancel"
    REORDER = "reorder"

    def __str__(self):
        return self.value
