from .base import Base
from .stock_event import StockNotificationEventRecord

__all__ = [
    'Base',
    'StockNotificationEventRecord',
]
