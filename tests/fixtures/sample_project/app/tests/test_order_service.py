from app.services.order_service import OrderService


def test_place():
    assert OrderService
