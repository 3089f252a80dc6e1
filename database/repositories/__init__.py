from database.repositories.base import BaseRepository
from database.repositories.stock_event import StockNotificationEventRepository

__all__ = [
    'BaseRepository',
    'StockNotificationEventRepository',
]
