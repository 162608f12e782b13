from .catalog import MeasurementUnit, TenderType, Product
from .people import Person
from .tills import Till, TillMovement, PaymentProof
from .commerce import Sale, SaleLine, Purchase, PurchaseLine
from .refunds import Refund, RefundLine

__all__ = [
    'MeasurementUnit', 'TenderType', 'Product',
    'Person',
    'Till', 'TillMovement', 'PaymentProof',
    'Sale', 'SaleLine', 'Purchase', 'PurchaseLine',
    'Refund', 'RefundLine',
]
