from app.services.order_service import OrderService
from app.repositories.order_repository import OrderRepository


def run() -> None:
    service = OrderService(OrderRepository())
    service.place("sku-1", 2)
