"""Saving chat exchanges and kicking off their embeddings"""

import logging

from src.config import AppConfig
from src.models.message import SaveChatMessagesResult
from src.services.embedding_tasks import EmbeddingTaskRunner
from src.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class ConversationNotFoundError(Exception):
    """Raised when a conversation does not exist or belongs to another user"""

    def __init__(self, conversation_id: int, user_id: int):
        self.conversation_id = conversation_id
        self.user_id = user_id
        super().__init__(
            f"Conversation {conversation_id} not found or access denied for user {user_id}"
        )


class ChatService:
    """Persist user/AI message pairs"""

    def __init__(
        self,
        config: AppConfig,
        message_store: MessageStore,
        task_runner: EmbeddingTaskRunner,
    ):
        self.config = config
        self.message_store = message_store
        self.task_runner = task_runner

    async def save_chat_messages(
        self,
        user_id: int,
        user_message: str,
        ai_message: str,
        conversation_id: int | None = None,
        model_used: str | None = None,
    ) -> SaveChatMessagesResult:
        """
        Save a user message and the AI reply, then embed both in the background

        A new conversation titled after the user message is created when no
        conversation_id is given. The result is returned as soon as both
        messages are stored; embeddings are still being generated.

        Raises:
            ConversationNotFoundError: If conversation_id is not owned by user_id
        """
        model = model_used or self.config.default_chat_model

        if conversation_id is None:
            title = user_message[:50] or "New Chat"
            conversation = await self.message_store.create_conversation(
                user_id, title=title, model_used=model
            )
            conversation_id = conversation.id
            logger.info(f"New conversation created: {conversation_id}")
        elif await self.message_store.get_conversation(conversation_id, user_id) is None:
            raise ConversationNotFoundError(conversation_id, user_id)

        user_msg, ai_msg = await self.message_store.save_message_pair(
            conversation_id, user_message, ai_message, model
        )
        logger.info(f"Messages saved: user={user_msg.id} ai={ai_msg.id}")

        self.task_runner.schedule(user_msg.id, user_msg.content)
        self.task_runner.schedule(ai_msg.id, ai_msg.content)

        return SaveChatMessagesResult(
            conversation_id=conversation_id,
            user_message_id=user_msg.id,
            ai_message_id=ai_msg.id,
            model_used=model,
        )
