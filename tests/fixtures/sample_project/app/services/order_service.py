import os
from typing import Optional

from app.models import Order
from app.repositories.order_repository import OrderRepository
from app.services.notifier import Notifier
from celery import shared_task


class OrderService:
    def __init__(self, repository: OrderRepository, notifier: Optional[Notifier] = None) -> None:
        self.repository = repository
        self.notifier = notifier or Notifier()
        self.queue = os.environ["ORDER_QUEUE"]

    def place(self, sku: str, quantity: int) -> Order:
        order = Order(sku, quantity)
        self.repository.save(order)
        return order


@shared_task
def nightly_report() -> None:
    OrderService(OrderRepository()).place("report", 0)
