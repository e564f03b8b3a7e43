# Payments module
from quickfund.modules.payments.models import Payment, PaymentStatus, PaymentType, PaymentMethod

__all__ = ["Payment", "PaymentStatus", "PaymentType", "PaymentMethod"]
