from models.user import User
from models.shopkeeper import Shopkeeper
from models.shop import Shop
from models.subscription import Subscription, SubscriptionDelivery
from models.order import Order, OrderEvent
from models.payment import Payment
from models.complaint import Complaint

__all__ = [
    "User", "Shopkeeper", "Shop",
    "Subscription", "SubscriptionDelivery",
    "Order", "OrderEvent", "Payment", "Complaint",
]
