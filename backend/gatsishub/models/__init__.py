from gatsishub.models.order import Order, OrderLog, OrderStatus
from gatsishub.models.payment import Payment, PaymentStatus
from gatsishub.models.catalog import Product, Material
from gatsishub.models.staff import Employee, Team, Quota, ProductionSubmission
from gatsishub.models.support import Feedback, Message

__all__ = [
    "Order",
    "OrderLog",
    "OrderStatus",
    "Payment",
    "PaymentStatus",
    "Product",
    "Material",
    "Employee",
    "Team",
    "Quota",
    "ProductionSubmission",
    "Feedback",
    "Message",
]
