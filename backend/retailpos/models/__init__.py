from .auth import User, SessionToken, EmailVerificationToken
from .security import SecurityEvent, OutboundEmail
from .catalog import Category, Product, StockAdjustment
from .sales import Sale, SaleLine, SalePayment

__all__ = [
    'User', 'SessionToken', 'EmailVerificationToken',
    'SecurityEvent', 'OutboundEmail',
    'Category', 'Product', 'StockAdjustment',
    'Sale', 'SaleLine', 'SalePayment',
]
