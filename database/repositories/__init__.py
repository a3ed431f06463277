from database.repositories.base import BaseRepository
from database.repositories.notification import NotificationRepository
from database.repositories.preference import PreferenceRepository
from database.repositories.template import TemplateRepository
from database.repositories.user import UserRepository

__all__ = [
    'BaseRepository',
    'NotificationRepository',
    'PreferenceRepository',
    'TemplateRepository',
    'UserRepository',
]
