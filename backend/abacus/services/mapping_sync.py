"""Directory reconciliation for identity mappings."""

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.config import Settings, get_settings
from abacus.models import IdentityMapping
from abacus.schemas.records import MappingResult
from abacus.services.anthropic_client import AnthropicClient
from abacus.services.errors import AuthConfigurationError, SyncError
from abacus.services.github_client import GitHubClient
from abacus.services.identity import IdentityResolver

logger = logging.getLogger(__name__)


class MappingSyncService:
    """
    Resolves unmapped identifiers against provider directories.

    Only IdentityMapping rows change; usage and commit rows keep the
    identifier they were written with.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings | None = None,
        resolver: IdentityResolver | None = None,
        anthropic_client: AnthropicClient | None = None,
        github_client: GitHubClient | None = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.resolver = resolver or IdentityResolver(db)
        self._anthropic_client = anthropic_client
        self._github_client = github_client

    async def _existing(self, provider: str) -> dict[str, str | None]:
        result = await self.db.execute(
            select(IdentityMapping.external_id, IdentityMapping.resolved_email).where(
                IdentityMapping.provider == provider
            )
        )
        return {row.external_id: row.resolved_email for row in result}

    async def claude_code_directory(self) -> dict[str, str]:
        """API key name -> creator email; active keys win over archived ones."""
        client = self._anthropic_client or AnthropicClient(
            self.settings.anthropic_admin_key, self.settings.anthropic_base_url
        )
        users, active, archived = await asyncio.gather(
            client.list_users(),
            client.list_api_keys("active"),
            client.list_api_keys("archived"),
        )
        emails = {user["id"]: user.get("email") for user in users}

        directory: dict[str, str] = {}
        for key in [*archived, *active]:
            creator = (key.get("created_by") or {}).get("id")
            email = emails.get(creator)
            if key.get("name") and email:
                directory[key["name"]] = email.lower()
        return directory

    async def github_directory(self) -> dict[str, str]:
        """GitHub user ID -> first verified domain email of org members."""
        if not self.settings.github_org:
            raise AuthConfigurationError("GITHUB_ORG not configured")

        client = self._github_client or GitHubClient(self.settings.github_token, self.settings.github_api_url)
        directory: dict[str, str] = {}
        for member in await client.fetch_member_emails(self.settings.github_org):
            emails = member.get("organizationVerifiedDomainEmails") or []
            if emails and member.get("databaseId") is not None:
                directory[str(member["databaseId"])] = emails[0].lower()
        return directory

    async def sync_mappings(self, provider: str, full: bool = False) -> MappingResult:
        """
        Fill `resolved_email` on unmapped rows from the provider directory.

        Args:
            provider: Provider whose identifiers to reconcile
            full: Also create mappings for directory entries never seen in data
        """
        result = MappingResult(provider=provider)

        if provider == "cursor":
            # Usage events carry emails
            result.skipped = True
            return result

        existing = await self._existing(provider)
        unmapped = [ext_id for ext_id, email in existing.items() if email is None]
        if not full and not unmapped:
            logger.info(f"No unmapped {provider} identifiers")
            return result

        try:
            if provider == "claude_code":
                directory = await self.claude_code_directory()
            elif provider == "github":
                directory = await self.github_directory()
            else:
                raise ValueError(f"Unknown provider: {provider}")
        except AuthConfigurationError as e:
            logger.info(f"Skipping {provider} mapping sync: {e}")
            result.skipped = True
            result.errors.append(str(e))
            return result
        except SyncError as e:
            logger.warning(f"{provider} directory lookup failed: {e}")
            result.success = False
            result.errors.append(str(e))
            return result

        result.entries_found = len(directory)

        try:
            for external_id, email in directory.items():
                if external_id in existing:
                    if existing[external_id] is None:
                        await self.resolver.learn(provider, external_id, email)
                        result.mappings_resolved += 1
                    else:
                        result.mappings_skipped += 1
                elif full:
                    await self.resolver.learn(provider, external_id, email)
                    result.mappings_created += 1
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            result.success = False
            result.errors.append(f"Database error: {e}")
            return result

        result.details["still_unmapped"] = len([ext_id for ext_id in unmapped if ext_id not in directory])
        logger.info(
            f"{provider} mapping sync: {result.mappings_resolved} resolved, "
            f"{result.mappings_created} created from {result.entries_found} directory entries"
        )
        return result
