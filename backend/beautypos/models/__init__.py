from .catalog import Category, Product, StockMovement
from .discounts import Discount
from .transactions import Transaction, TransactionItem, TransactionSequence, PAYMENT_METHODS
from .feedback import Feedback

__all__ = [
    'Category', 'Product', 'StockMovement',
    'Discount',
    'Transaction', 'TransactionItem', 'TransactionSequence', 'PAYMENT_METHODS',
    'Feedback',
]
