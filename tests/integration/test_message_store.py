"""Integration tests for MessageStore"""

import pytest

from src.models.message import MessageRole


class TestMessageStore:
    """Test the conversation/message interface consumed by search and chat saving"""

    @pytest.mark.asyncio
    async def test_save_message_pair(self, message_store):
        """Test that a pair is stored in order and counted on the conversation"""
        conversation = await message_store.create_conversation(1, title="Chat", model_used="m1")

        user_msg, ai_msg = await message_store.save_message_pair(
            conversation.id, "How do I index?", "Use CREATE INDEX.", "m2"
        )

        assert user_msg.role == MessageRole.USER
        assert ai_msg.role == MessageRole.AI
        assert ai_msg.id > user_msg.id
        messages = await message_store.list_messages(conversation.id, user_id=1)
        assert [m.content for m in messages] == ["How do I index?", "Use CREATE INDEX."]
        updated = await message_store.get_conversation(conversation.id, user_id=1)
        assert updated.message_count == 2
        assert updated.model_used == "m2"

    @pytest.mark.asyncio
    async def test_get_conversation_checks_owner(self, message_store):
        """Test that another user's conversation is invisible"""
        conversation = await message_store.create_conversation(1)

        assert await message_store.get_conversation(conversation.id, user_id=2) is None
        assert await message_store.get_conversation(conversation.id, user_id=1) is not None

    @pytest.mark.asyncio
    async def test_delete_conversation_checks_owner(self, message_store):
        """Test that only the owner can delete a conversation"""
        conversation = await message_store.create_conversation(1)

        assert await message_store.delete_conversation(conversation.id, user_id=2) is False
        assert await message_store.delete_conversation(conversation.id, user_id=1) is True

    @pytest.mark.asyncio
    async def test_keyword_search_is_case_insensitive_substring(
        self, message_store, add_conversation, add_message
    ):
        """Test matching, user scoping and newest-first ordering"""
        mine = add_conversation(1, "Databases")
        theirs = add_conversation(2, "Other")
        older = add_message(mine, "Database PERFORMANCE tuning", minutes=1)
        newer = add_message(mine, "more on database performance", minutes=2)
        add_message(mine, "unrelated", minutes=3)
        add_message(theirs, "database performance elsewhere", minutes=4)

        records = await message_store.keyword_search(1, "database performance")

        assert [r.id for r in records] == [newer, older]
        assert records[0].conversation_title == "Databases"

    @pytest.mark.asyncio
    async def test_keyword_search_matches_literally(
        self, message_store, add_conversation, add_message
    ):
        """Test that LIKE wildcards in the query have no special meaning"""
        conversation = add_conversation(1)
        percent = add_message(conversation, "growth was 100% this year")
        add_message(conversation, "growth was 100 points")

        records = await message_store.keyword_search(1, "100%")

        assert [r.id for r in records] == [percent]

    @pytest.mark.asyncio
    async def test_keyword_search_folds_unicode_case(
        self, message_store, add_conversation, add_message
    ):
        conversation = add_conversation(1)
        message_id = add_message(conversation, "Über die STRASSE")

        records = await message_store.keyword_search(1, "über die straße")

        assert [r.id for r in records] == [message_id]

    @pytest.mark.asyncio
    async def test_keyword_search_limit(self, message_store, add_conversation, add_message):
        conversation = add_conversation(1)
        for i in range(5):
            add_message(conversation, f"note {i}", minutes=i)

        records = await message_store.keyword_search(1, "note", limit=2)

        assert [r.content for r in records] == ["note 4", "note 3"]
