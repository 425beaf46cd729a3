"""GitHub push webhook verification and ingestion."""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.config import Settings, get_settings
from abacus.schemas.records import CommitRecord, PushResult
from abacus.services.attribution import AttributionDetector
from abacus.services.commits import GITHUB, CommitWriter, user_id_from_noreply_email
from abacus.services.errors import AuthConfigurationError, PayloadValidationError, SyncError
from abacus.services.github_client import GitHubClient
from abacus.services.identity import IdentityResolver
from abacus.services.timeutils import parse_timestamp

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


@dataclass
class WebhookDelivery:
    """An inbound delivery exactly as received."""

    body: bytes
    signature: str | None = None
    event: str | None = None
    delivery_id: str | None = None


def sign(secret: str, body: bytes) -> str:
    digest = hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Constant-time check of an `X-Hub-Signature-256` header over the raw body."""
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    return hmac.compare_digest(sign(secret, body), signature)


class WebhookProcessor:
    """
    Processes GitHub webhook deliveries.

    Signature verification happens before the body is parsed. `ping` is
    acknowledged, other non-push events are ignored, and only pushes to the
    repository's default branch are stored.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        resolver: IdentityResolver | None = None,
        detector: AttributionDetector | None = None,
        client: GitHubClient | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.resolver = resolver or IdentityResolver(db)
        self.detector = detector or AttributionDetector.from_config(self.settings.attribution_rules)
        self.writer = CommitWriter(db, self.resolver, self.settings)
        self._client = client

    @property
    def client(self) -> GitHubClient | None:
        if self._client is None and self.settings.github_token:
            self._client = GitHubClient(self.settings.github_token, self.settings.github_api_url)
        return self._client

    async def process_delivery(self, delivery: WebhookDelivery) -> PushResult:
        """
        Verify and process one delivery.

        Raises:
            AuthConfigurationError: no webhook secret is configured
            PayloadValidationError: bad signature (401) or malformed JSON (400)
        """
        secret = self.settings.github_webhook_secret
        if not secret:
            raise AuthConfigurationError("GITHUB_WEBHOOK_SECRET not configured")

        if not verify_signature(secret, delivery.body, delivery.signature):
            logger.warning(f"Rejected webhook delivery {delivery.delivery_id}: invalid signature")
            raise PayloadValidationError("Invalid signature", status_code=401)

        try:
            payload = json.loads(delivery.body)
        except ValueError as e:
            raise PayloadValidationError("Invalid JSON payload", status_code=400) from e
        if not isinstance(payload, dict):
            raise PayloadValidationError("Invalid JSON payload", status_code=400)

        if delivery.event == "ping":
            logger.info(f"Webhook ping received (delivery {delivery.delivery_id})")
            return PushResult(skipped=True, reason="ping", delivery_id=delivery.delivery_id)

        if delivery.event != "push":
            return PushResult(
                skipped=True,
                reason=f"ignored event: {delivery.event}",
                delivery_id=delivery.delivery_id,
            )

        return await self.process_push(payload, delivery.delivery_id)

    def _author_id(self, commit: dict[str, Any], sender: dict[str, Any] | None) -> str | None:
        author = commit.get("author") or {}
        author_id = user_id_from_noreply_email(author.get("email"))
        if author_id:
            return author_id
        if sender and author.get("username") and sender.get("login") == author.get("username"):
            return str(sender["id"])
        return None

    async def _line_stats(self, repo: str, commit: dict[str, Any]) -> tuple[int | None, int | None]:
        stats = commit.get("stats") or {}
        additions = stats.get("additions", commit.get("additions"))
        deletions = stats.get("deletions", commit.get("deletions"))
        if additions is not None and deletions is not None:
            return additions, deletions

        client = self.client
        if client is None:
            return None, None
        try:
            detail = await client.get_commit(repo, commit["id"])
        except SyncError as e:
            # Polling fills the stats later
            logger.warning(f"Could not fetch stats for {repo}@{commit['id'][:7]}: {e}")
            return None, None
        detail_stats = detail.get("stats") or {}
        return detail_stats.get("additions") or 0, detail_stats.get("deletions") or 0

    def _add_error(self, result: PushResult, message: str) -> None:
        if len(result.errors) < self.settings.max_errors_collected:
            result.errors.append(message)

    async def _record(self, repo: str, commit: dict[str, Any], sender: dict[str, Any] | None) -> CommitRecord:
        author = commit.get("author") or {}
        committed_at = parse_timestamp(commit.get("timestamp"))
        if committed_at is None:
            raise PayloadValidationError(f"Commit {commit.get('id')}: missing timestamp")

        additions, deletions = await self._line_stats(repo, commit)
        message = commit.get("message")
        return CommitRecord(
            repo=repo,
            commit_id=commit["id"],
            committed_at=committed_at,
            message=message,
            author_email=author.get("email"),
            author_id=self._author_id(commit, sender),
            additions=additions,
            deletions=deletions,
            attributions=self.detector.detect(
                message,
                " ".join(filter(None, [author.get("name"), author.get("username")])),
                author.get("email"),
            ),
            source=GITHUB,
        )

    async def process_push(self, payload: dict[str, Any], delivery_id: str | None = None) -> PushResult:
        """Store every commit of a default-branch push."""
        repository = payload.get("repository") or {}
        repo = repository.get("full_name")
        result = PushResult(delivery_id=delivery_id, repository=repo)
        if not repo:
            raise PayloadValidationError("Push payload has no repository")

        branch = (payload.get("ref") or "").removeprefix("refs/heads/")
        if branch != repository.get("default_branch"):
            result.skipped = True
            result.reason = f"push to non-default branch: {branch}"
            return result

        sender = payload.get("sender")
        try:
            for commit in payload.get("commits") or []:
                try:
                    record = await self._record(repo, commit, sender)
                except (SyncError, KeyError) as e:
                    self._add_error(result, f"Commit {commit.get('id')}: {e}")
                    continue

                await self.writer.write([record])
                result.commits_processed += 1
                if record.attributions:
                    result.ai_attributed_commits += 1

            await self.resolver.flush()
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            self.resolver.discard()
            logger.error(f"Failed to store push to {repo}: {e}")
            result.success = False
            result.commits_processed = 0
            result.ai_attributed_commits = 0
            self._add_error(result, f"Database error: {e}")
            return result

        logger.info(
            f"Processed push to {repo}: {result.commits_processed} commits, "
            f"{result.ai_attributed_commits} AI attributed"
        )
        return result
