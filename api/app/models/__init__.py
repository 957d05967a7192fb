"""Database models for the Brew-Me-In API."""

from app.models.message import ChatMessage
from app.models.notification import Notification
from app.models.poke import DMChannel, Poke
from app.models.user import APIKey, User, UserInterest, UserRole

__all__ = [
    "User",
    "UserRole",
    "UserInterest",
    "APIKey",
    "Poke",
    "DMChannel",
    "ChatMessage",
    "Notification",
]
