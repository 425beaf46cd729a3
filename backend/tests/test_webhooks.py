"""Tests for GitHub webhook verification and push ingestion."""

import copy
import json

import pytest
from sqlalchemy import select

from abacus.models import Commit, IdentityMapping
from abacus.services.errors import AuthConfigurationError, PayloadValidationError
from abacus.services.webhooks import WebhookDelivery, WebhookProcessor, sign, verify_signature

SECRET = "test-webhook-secret"


def delivery(payload, event="push", secret=SECRET, delivery_id="d-1") -> WebhookDelivery:
    body = json.dumps(payload).encode()
    return WebhookDelivery(body=body, signature=sign(secret, body), event=event, delivery_id=delivery_id)


class TestSignature:
    def test_verify(self):
        body = b'{"zen": "Keep it logically awesome."}'
        assert verify_signature(SECRET, body, sign(SECRET, body))

    def test_reject(self):
        body = b"{}"
        assert not verify_signature(SECRET, body, sign("other-secret", body))
        assert not verify_signature(SECRET, body, None)
        assert not verify_signature(SECRET, body, sign(SECRET, body).removeprefix("sha256="))
        assert not verify_signature(SECRET, b"{ }", sign(SECRET, body))


class TestWebhookProcessor:
    """Tests for WebhookProcessor.process_delivery."""

    @pytest.fixture
    def processor(self, db_session, test_settings, resolver) -> WebhookProcessor:
        return WebhookProcessor(db_session, test_settings, resolver)

    @pytest.mark.asyncio
    async def test_secret_required(self, db_session, test_settings):
        settings = test_settings.model_copy(update={"github_webhook_secret": None})
        processor = WebhookProcessor(db_session, settings)

        with pytest.raises(AuthConfigurationError):
            await processor.process_delivery(delivery({}))

    @pytest.mark.asyncio
    async def test_bad_signature(self, processor, sample_push_payload):
        with pytest.raises(PayloadValidationError) as exc_info:
            await processor.process_delivery(delivery(sample_push_payload, secret="wrong"))
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_json(self, processor):
        body = b"not json"
        bad = WebhookDelivery(body=body, signature=sign(SECRET, body), event="push")

        with pytest.raises(PayloadValidationError) as exc_info:
            await processor.process_delivery(bad)
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_ping(self, processor):
        result = await processor.process_delivery(delivery({"zen": "hi"}, event="ping"))

        assert result.success
        assert result.skipped
        assert result.reason == "ping"
        assert result.delivery_id == "d-1"

    @pytest.mark.asyncio
    async def test_other_event_ignored(self, processor):
        result = await processor.process_delivery(delivery({"action": "opened"}, event="pull_request"))

        assert result.skipped
        assert result.reason == "ignored event: pull_request"

    @pytest.mark.asyncio
    async def test_non_default_branch(self, processor, db_session, sample_push_payload):
        payload = dict(sample_push_payload, ref="refs/heads/feature/x")

        result = await processor.process_delivery(delivery(payload))

        assert result.skipped
        assert result.commits_processed == 0
        assert (await db_session.execute(select(Commit))).first() is None

    @pytest.mark.asyncio
    async def test_default_branch_push(self, processor, db_session, sample_push_payload):
        result = await processor.process_delivery(delivery(sample_push_payload))

        assert result.success
        assert result.repository == "acme/api"
        assert result.commits_processed == 2
        assert result.ai_attributed_commits == 1

        rows = (await db_session.execute(select(Commit).order_by(Commit.commit_id))).scalars().all()
        ai, human = rows
        assert ai.ai_tool == "claude_code"
        assert ai.ai_model == "opus-4.5"
        assert ai.author_id == "4242"
        assert (ai.additions, ai.deletions) == (10, 2)
        assert human.ai_tool is None
        assert human.author_id is None
        assert (human.additions, human.deletions) == (1, 1)

        # The noreply author is counted as unmapped
        mapping = await db_session.execute(
            select(IdentityMapping).where(IdentityMapping.provider == "github")
        )
        unmapped = mapping.scalar_one()
        assert unmapped.external_id == "4242"
        assert unmapped.resolved_email is None

    @pytest.mark.asyncio
    async def test_noreply_author_uses_mapping(self, processor, resolver, db_session, sample_push_payload):
        await resolver.assign("github", "4242", "dev@acme.com")
        await db_session.commit()

        await processor.process_delivery(delivery(sample_push_payload))

        result = await db_session.execute(select(Commit.author_email).where(Commit.commit_id == "a" * 40))
        assert result.scalar_one() == "dev@acme.com"

    @pytest.mark.asyncio
    async def test_redelivery_is_idempotent(self, processor, db_session, sample_push_payload):
        """Test a redelivered push without stats keeps stored values."""
        await processor.process_delivery(delivery(sample_push_payload))

        redelivered = copy.deepcopy(sample_push_payload)
        del redelivered["commits"][0]["stats"]
        result = await processor.process_delivery(delivery(redelivered, delivery_id="d-2"))

        assert result.commits_processed == 2
        rows = (await db_session.execute(select(Commit).order_by(Commit.commit_id))).scalars().all()
        assert len(rows) == 2
        await db_session.refresh(rows[0])
        assert (rows[0].additions, rows[0].deletions) == (10, 2)

        count = await db_session.execute(
            select(IdentityMapping.occurrence_count).where(IdentityMapping.external_id == "4242")
        )
        assert count.scalar_one() == 1

    @pytest.mark.asyncio
    async def test_commit_without_timestamp_reported(self, processor, sample_push_payload):
        payload = copy.deepcopy(sample_push_payload)
        del payload["commits"][1]["timestamp"]

        result = await processor.process_delivery(delivery(payload))

        assert result.success
        assert result.commits_processed == 1
        assert "missing timestamp" in result.errors[0]

    @pytest.mark.asyncio
    async def test_errors_bounded(self, db_session, test_settings, resolver, sample_push_payload):
        settings = test_settings.model_copy(update={"max_errors_collected": 2})
        processor = WebhookProcessor(db_session, settings, resolver)
        payload = copy.deepcopy(sample_push_payload)
        broken = payload["commits"][1]
        del broken["timestamp"]
        payload["commits"] = [dict(broken, id=f"{i:040d}") for i in range(5)]

        result = await processor.process_delivery(delivery(payload))

        assert result.success
        assert result.commits_processed == 0
        assert len(result.errors) == 2
