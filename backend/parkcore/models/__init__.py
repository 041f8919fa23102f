from .parking import Sector, Street, Operator, OperatorAssignment, ParkingSession
from .pricing import PricingProfile, PricingRule, DiscountRule
from .sales import Sale, Payment, Debt
from .shifts import Shift, ShiftOperation, CashAdjustment
from .audit import AuditLog, IdempotencyKey

__all__ = [
    'Sector', 'Street', 'Operator', 'OperatorAssignment', 'ParkingSession',
    'PricingProfile', 'PricingRule', 'DiscountRule',
    'Sale', 'Payment', 'Debt',
    'Shift', 'ShiftOperation', 'CashAdjustment',
    'AuditLog', 'IdempotencyKey',
]
