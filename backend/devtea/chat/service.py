"""Wiring for the chat engine.

``ChatService`` bundles one store with the managers bound to it. The app
factory builds exactly one per application and hangs it on ``app.state``;
route handlers receive it through the ``get_chat_service`` dependency, so
every test can start from a fresh store.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from devtea.config import ChatSettings

from .dispatcher import CommandDispatcher
from .membership import MembershipManager
from .messages import MessageEngine
from .store import ConversationStore

logger = logging.getLogger(__name__)


@dataclass
class ChatService:
    store: ConversationStore
    membership: MembershipManager
    engine: MessageEngine
    dispatcher: CommandDispatcher


def build_chat_service(settings: Optional[ChatSettings] = None) -> ChatService:
    """Create a store and bind the membership manager, engine and dispatcher."""
    settings = settings or ChatSettings()
    store = ConversationStore(
        seed=settings.seed_default_rooms,
        bot_name=settings.bot_name,
    )
    membership = MembershipManager(store)
    engine = MessageEngine(store, membership, settings.online_window_seconds)
    dispatcher = CommandDispatcher(store, membership, engine)
    logger.info("[ChatService] Ready with %d rooms", len(store.rooms))
    return ChatService(store, membership, engine, dispatcher)


def get_chat_service(request: Request) -> ChatService:
    """FastAPI dependency returning the application's chat service."""
    return request.app.state.chat
