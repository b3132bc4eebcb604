from .client_repository import ClientRepository
from .document_repository import DocumentRepository
from .notification_repository import NotificationRepository
from .user_repository import UserRepository

__all__ = [
    "UserRepository",
    "ClientRepository",
    "DocumentRepository",
    "NotificationRepository",
]
