"""Routers package."""

from . import (
    health,
    chats,
    messages,
    users,
)
