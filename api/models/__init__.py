from models.user import User
from models.catalog import SubscriptionPlan, Service
from models.subscription import Subscription
from models.order import Order, OrderItem, OrderEvent
from models.payment import Payment

__all__ = [
    "User", "SubscriptionPlan", "Service", "Subscription",
    "Order", "OrderItem", "OrderEvent", "Payment",
]
