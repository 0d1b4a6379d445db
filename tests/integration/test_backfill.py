"""Integration tests for the embedding backfill job"""

import httpx
import pytest

from src.config import AppConfig
from src.services.backfill import BackfillJob


class TestBackfillJob:
    """Test sequential backfill with partial failures"""

    @pytest.fixture
    def make_job(self, config, embedding_store):
        def _make(embedder):
            return BackfillJob(config, embedder, embedding_store)

        return _make

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, make_job, make_embedder, add_conversation, add_message):
        """Test the zero-activity result when every message is embedded or blank"""
        add_message(add_conversation(1), "  \n ")
        embedder = make_embedder(default=[1.0])

        result = await make_job(embedder).run(1)

        assert result.success is True
        assert result.message == "All messages already have embeddings"
        assert (result.total_processed, result.success_count, result.fail_count) == (0, 0, 0)
        assert result.errors == []
        assert result.embedding_model == "stub-embed"
        assert embedder.calls == []

    @pytest.mark.asyncio
    async def test_embeds_all_pending_messages(
        self, make_job, make_embedder, embedding_store, add_conversation, add_message
    ):
        conversation = add_conversation(1)
        ids = [add_message(conversation, f"message {i}", minutes=i) for i in range(3)]

        result = await make_job(make_embedder(default=[0.5, 0.5])).run(1)

        assert result.total_processed == 3
        assert result.success_count == 3
        assert result.fail_count == 0
        assert result.message is None
        for message_id in ids:
            stored = await embedding_store.get_embedding(message_id)
            assert stored.embedding == [0.5, 0.5]
            assert stored.model_name == "stub-embed"
        assert await embedding_store.fetch_unembedded(1, limit=100) == []

    @pytest.mark.asyncio
    async def test_limit_takes_newest_first(
        self, make_job, make_embedder, add_conversation, add_message
    ):
        """Test that only the newest ``limit`` messages are processed"""
        conversation = add_conversation(1)
        for i in range(5):
            add_message(conversation, f"message {i}", minutes=i)
        embedder = make_embedder(default=[1.0])

        result = await make_job(embedder).run(1, limit=2)

        assert result.total_processed == 2
        assert embedder.calls == ["message 4", "message 3"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("limit", [0, -1, -100])
    async def test_non_positive_limit_rejected(
        self, make_job, make_embedder, embedding_store, add_conversation, add_message, limit
    ):
        """Test that a limit below 1 never turns into a default or an unbounded run"""
        conversation = add_conversation(1)
        for i in range(7):
            add_message(conversation, f"message {i}", minutes=i)
        embedder = make_embedder(default=[1.0])

        with pytest.raises(ValueError):
            await make_job(embedder).run(1, limit=limit)

        assert embedder.calls == []
        assert len(await embedding_store.fetch_unembedded(1, limit=100)) == 7

    @pytest.mark.asyncio
    async def test_default_limit_from_config(
        self, embedding_store, make_embedder, add_conversation, add_message
    ):
        config = AppConfig(db_path=":memory:", backfill_default_limit=3)
        conversation = add_conversation(1)
        for i in range(5):
            add_message(conversation, f"message {i}", minutes=i)

        result = await BackfillJob(config, make_embedder(default=[1.0]), embedding_store).run(1)

        assert result.total_processed == 3

    @pytest.mark.asyncio
    async def test_failures_are_counted_and_capped(
        self, make_job, make_embedder, embedding_store, add_conversation, add_message
    ):
        """Test that failures never stop the run and at most five are reported"""
        conversation = add_conversation(1)
        failing = {}
        for i in range(7):
            content = f"broken {i}"
            add_message(conversation, content, minutes=i)
            failing[content] = httpx.ConnectError("connection refused")
        ok = add_message(conversation, "works fine", minutes=10)
        embedder = make_embedder(default=[1.0], errors=failing)

        result = await make_job(embedder).run(1)

        assert result.total_processed == 8
        assert result.success_count == 1
        assert result.fail_count == 7
        assert result.success_count + result.fail_count == result.total_processed
        assert len(result.errors) == 5
        assert all(e.error == "connection refused" for e in result.errors)
        assert (await embedding_store.get_embedding(ok)).embedding == [1.0]

    @pytest.mark.asyncio
    async def test_missing_vector_counts_as_failure(
        self, make_job, make_embedder, embedding_store, add_conversation, add_message
    ):
        """Test that a provider returning nothing is a failure, not a success"""
        conversation = add_conversation(1)
        embedded = add_message(conversation, "has a vector", minutes=1)
        missing = add_message(conversation, "no vector", minutes=2)
        embedder = make_embedder(vectors={"has a vector": [1.0, 0.0]})

        result = await make_job(embedder).run(1)

        assert result.success_count == 1
        assert result.fail_count == 1
        assert result.errors[0].message_id == missing
        assert "failed" in result.errors[0].error
        assert await embedding_store.get_embedding(missing) is None
        assert await embedding_store.get_embedding(embedded) is not None

    @pytest.mark.asyncio
    async def test_earlier_successes_survive_later_failures(
        self, make_job, make_embedder, embedding_store, add_conversation, add_message
    ):
        """Test that there is no rollback across items"""
        conversation = add_conversation(1)
        first = add_message(conversation, "newest ok", minutes=3)
        add_message(conversation, "older broken", minutes=2)
        embedder = make_embedder(
            default=[1.0], errors={"older broken": RuntimeError("provider exploded")}
        )

        result = await make_job(embedder).run(1)

        assert result.fail_count == 1
        assert await embedding_store.get_embedding(first) is not None

    @pytest.mark.asyncio
    async def test_only_targets_the_given_user(
        self, make_job, make_embedder, embedding_store, add_conversation, add_message
    ):
        add_message(add_conversation(1), "mine")
        theirs = add_message(add_conversation(2), "theirs")

        result = await make_job(make_embedder(default=[1.0])).run(1)

        assert result.total_processed == 1
        assert await embedding_store.get_embedding(theirs) is None

    @pytest.mark.asyncio
    async def test_result_serializes_with_camel_case(
        self, make_job, make_embedder, add_conversation, add_message
    ):
        add_message(add_conversation(1), "broken one")
        embedder = make_embedder(errors={"broken one": RuntimeError("boom")})

        result = await make_job(embedder).run(1)
        payload = result.model_dump(by_alias=True, mode="json", exclude_none=True)

        assert payload == {
            "success": True,
            "totalProcessed": 1,
            "successCount": 0,
            "failCount": 1,
            "embeddingModel": "stub-embed",
            "errors": [{"messageId": result.errors[0].message_id, "error": "boom"}],
        }

    @pytest.mark.asyncio
    async def test_unicode_whitespace_padding_is_not_pending(
        self, make_job, make_embedder, add_conversation, add_message
    ):
        """Test that text too short once stripped is never selected for backfill"""
        add_message(add_conversation(1), "\u3000\u3000ab\u3000")
        embedder = make_embedder(default=[1.0])

        result = await make_job(embedder).run(1)

        assert result.total_processed == 0
        assert result.fail_count == 0
        assert embedder.calls == []
