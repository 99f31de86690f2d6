"""Order lifecycle: place, list and cancel.

Persistence always completes before a notification is attempted. Email
failures are reported in the result and never undo the store mutation.
"""

from dataclasses import dataclass
from typing import List, Optional

import structlog

from database import OrderStore
from notifications import Notifier
from schemas import NotificationOutcome, Order, OrderDraft

logger = structlog.get_logger(__name__)


@dataclass
class OrderPlacement:
    order: Order
    notification: NotificationOutcome


@dataclass
class OrderCancellation:
    order: Order
    notification: NotificationOutcome


class OrderService:
    def __init__(self, store: OrderStore, notifier: Notifier):
        self.store = store
        self.notifier = notifier

    async def place(self, draft: OrderDraft, user_id: Optional[str] = None) -> OrderPlacement:
        logger.info("Received order", product_id=draft.product_id, user_email=draft.user_email)
        order = await self.store.create(draft, user_id=user_id)
        notification = await self.notifier.order_confirmation(order)
        logger.info("Order placed", order_id=order.id, notification=notification.status)
        return OrderPlacement(order=order, notification=notification)

    async def list_for(self, email: str) -> List[Order]:
        return await self.store.list_by_purchaser(email)

    async def cancel(self, order_id: str) -> OrderCancellation:
        logger.info("Cancel requested", order_id=order_id)
        order = await self.store.find_by_id(order_id)
        # No transactional link: the email goes out before the record is removed.
        notification = await self.notifier.order_cancellation(order)
        await self.store.delete_by_id(order_id)
        logger.info("Order cancelled", order_id=order_id, notification=notification.status)
        return OrderCancellation(order=order, notification=notification)
