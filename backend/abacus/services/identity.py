"""Resolution of provider identifiers to canonical emails."""

import logging
from collections import Counter
from datetime import UTC, datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from abacus.models import IdentityMapping
from abacus.services.upserts import insert_for

logger = logging.getLogger(__name__)


def is_real_work_email(email: str | None, domain: str | None = None) -> bool:
    """
    Whether an email identifies a person rather than a noreply address.

    When a work domain is configured the email must belong to it.
    """
    if not email:
        return False
    email = email.lower()
    if email.endswith("@users.noreply.github.com") or "noreply" in email:
        return False
    if domain:
        return email.endswith(f"@{domain.lower()}")
    return True


class IdentityResolver:
    """
    Resolves opaque provider identifiers (API key names, VCS user IDs).

    Mappings are loaded once per provider per resolver. A miss registers the
    identifier; writers call `record_occurrence()` for each stored row that
    is new under an unresolved identifier, so fetching the same records
    again never adds to the count. `flush()` writes one IdentityMapping row
    per identifier, adding the counted occurrences.
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self._cache: dict[str, dict[str, str | None]] = {}
        self._misses: Counter[tuple[str, str]] = Counter()

    async def _mappings(self, provider: str) -> dict[str, str | None]:
        if provider not in self._cache:
            result = await self.db.execute(
                select(IdentityMapping.external_id, IdentityMapping.resolved_email).where(
                    IdentityMapping.provider == provider
                )
            )
            self._cache[provider] = {row.external_id: row.resolved_email for row in result}
        return self._cache[provider]

    async def resolve(self, provider: str, external_id: str) -> str | None:
        """Email for the identifier, or None (registered as unmapped)."""
        mappings = await self._mappings(provider)
        email = mappings.get(external_id)
        if email is None:
            self._misses.setdefault((provider, external_id), 0)
        return email

    def record_occurrence(self, provider: str, external_id: str, count: int = 1) -> None:
        """Count newly stored records attributed to an unmapped identifier."""
        self._misses[(provider, external_id)] += count

    @property
    def pending_misses(self) -> dict[tuple[str, str], int]:
        return dict(self._misses)

    def discard(self) -> None:
        """Forget misses counted for records that were not written."""
        self._misses.clear()

    async def flush(self) -> int:
        """
        Record counted misses on IdentityMapping rows.

        Returns:
            Number of distinct unmapped identifiers written
        """
        if not self._misses:
            return 0

        now = datetime.now(UTC)
        for (provider, external_id), count in self._misses.items():
            stmt = insert_for(self.db, IdentityMapping).values(
                provider=provider,
                external_id=external_id,
                occurrence_count=count,
                first_seen_at=now,
                last_seen_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["provider", "external_id"],
                set_={
                    "occurrence_count": IdentityMapping.occurrence_count + stmt.excluded.occurrence_count,
                    "last_seen_at": stmt.excluded.last_seen_at,
                },
            )
            await self.db.execute(stmt)

        written = len(self._misses)
        logger.info(f"Recorded {sum(self._misses.values())} unmapped occurrences from {written} identifiers")
        self._misses.clear()
        return written

    async def learn(self, provider: str, external_id: str, email: str) -> None:
        """Record an auto-detected mapping without overriding an existing assignment."""
        email = email.lower()
        now = datetime.now(UTC)
        stmt = insert_for(self.db, IdentityMapping).values(
            provider=provider,
            external_id=external_id,
            resolved_email=email,
            first_seen_at=now,
            resolved_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["provider", "external_id"],
            set_={"resolved_email": stmt.excluded.resolved_email, "resolved_at": now},
            where=IdentityMapping.resolved_email.is_(None),
        )
        await self.db.execute(stmt)

        mappings = await self._mappings(provider)
        if mappings.get(external_id) is None:
            mappings[external_id] = email

    async def assign(self, provider: str, external_id: str, email: str) -> None:
        """Operator assignment; replaces any previous mapping."""
        email = email.lower()
        now = datetime.now(UTC)
        stmt = insert_for(self.db, IdentityMapping).values(
            provider=provider,
            external_id=external_id,
            resolved_email=email,
            first_seen_at=now,
            resolved_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["provider", "external_id"],
            set_={"resolved_email": email, "resolved_at": now},
        )
        await self.db.execute(stmt)
        (await self._mappings(provider))[external_id] = email
        logger.info(f"Mapped {provider}:{external_id} -> {email}")

    async def list_unmapped(self, provider: str | None = None) -> list[IdentityMapping]:
        """Unmapped identifiers, most frequent first."""
        query = select(IdentityMapping).where(IdentityMapping.resolved_email.is_(None))
        if provider:
            query = query.where(IdentityMapping.provider == provider)
        result = await self.db.execute(
            query.order_by(IdentityMapping.occurrence_count.desc(), IdentityMapping.external_id)
        )
        return list(result.scalars().all())

    async def unmapped_summary(self, provider: str | None = None) -> dict:
        """Totals for operator tooling: N occurrences from M unmapped identifiers."""
        query = select(
            func.count(IdentityMapping.external_id),
            func.coalesce(func.sum(IdentityMapping.occurrence_count), 0),
        ).where(IdentityMapping.resolved_email.is_(None))
        if provider:
            query = query.where(IdentityMapping.provider == provider)
        identifiers, occurrences = (await self.db.execute(query)).one()

        return {
            "provider": provider,
            "identifiers": identifiers,
            "occurrences": int(occurrences),
            "message": f"{int(occurrences)} occurrences from {identifiers} unmapped identifiers",
        }
