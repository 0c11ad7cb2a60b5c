from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .db.models import SessionRecord, UserProfile


@dataclass(frozen=True)
class StoredProfile:
    id: str
    provider: str
    identifier: str
    provider_data: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class StoredSession:
    session_token: str
    profile_id: str
    provider_token: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    last_seen_at: Optional[datetime] = None


class CredentialStore:
    """Durable storage for user profiles and the sessions issued to them.

    Every call runs in its own short transaction, so a failure between two
    calls never leaves a half-written row behind.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from .db.session import AsyncSessionLocal
            session_factory = AsyncSessionLocal
        self._session_factory = session_factory

    # Profiles

    async def get_profile(self, profile_id: str) -> Optional[StoredProfile]:
        async with self._session_factory() as session:
            row = await session.get(UserProfile, profile_id)
            return self._profile_to_record(row) if row else None

    async def get_profile_by_identifier(self, provider: str, identifier: str) -> Optional[StoredProfile]:
        async with self._session_factory() as session:
            row = await self._find_profile(session, provider, identifier)
            return self._profile_to_record(row) if row else None

    async def create_profile(self, provider: str, identifier: str, provider_data: Dict[str, Any]) -> StoredProfile:
        async with self._session_factory() as session:
            row = UserProfile(provider=provider, identifier=identifier, provider_data=provider_data)
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return self._profile_to_record(row)

    async def update_profile(self, provider: str, identifier: str, provider_data: Dict[str, Any]) -> Optional[StoredProfile]:
        async with self._session_factory() as session:
            row = await self._find_profile(session, provider, identifier)
            if row is None:
                return None
            row.provider_data = provider_data
            row.updated_at = datetime.now(timezone.utc)
            await session.commit()
            await session.refresh(row)
            return self._profile_to_record(row)

    async def upsert_profile(self, provider: str, identifier: str, provider_data: Dict[str, Any]) -> StoredProfile:
        """Create the profile on first login, refresh its data afterwards."""
        updated = await self.update_profile(provider, identifier, provider_data)
        if updated is not None:
            return updated
        try:
            return await self.create_profile(provider, identifier, provider_data)
        except IntegrityError:
            # A concurrent first login for the same account won the insert
            updated = await self.update_profile(provider, identifier, provider_data)
            if updated is None:
                raise
            return updated

    async def count_profiles(self, provider: str, identifier: str) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(UserProfile)
                .where(UserProfile.provider == provider, UserProfile.identifier == identifier)
            )
            return result.scalar_one()

    # Sessions

    async def get_session(self, session_token: str) -> Optional[StoredSession]:
        async with self._session_factory() as session:
            row = await session.get(SessionRecord, session_token)
            return self._session_to_record(row) if row else None

    async def get_profile_by_session(self, session_token: str) -> Optional[StoredProfile]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserProfile)
                .join(SessionRecord, SessionRecord.profile_id == UserProfile.id)
                .where(SessionRecord.session_token == session_token)
            )
            row = result.scalars().first()
            return self._profile_to_record(row) if row else None

    async def list_sessions(self, profile_id: str) -> List[StoredSession]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SessionRecord)
                .where(SessionRecord.profile_id == profile_id)
                .order_by(SessionRecord.created_at)
            )
            return [self._session_to_record(row) for row in result.scalars().all()]

    async def create_session(
        self,
        profile_id: str,
        session_token: str,
        provider_token: Optional[Dict[str, Any]] = None,
        created_at: Optional[datetime] = None,
    ) -> StoredSession:
        now = created_at or datetime.now(timezone.utc)
        async with self._session_factory() as session:
            row = SessionRecord(
                session_token=session_token,
                profile_id=profile_id,
                provider_token=provider_token,
                created_at=now,
                last_seen_at=now,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return self._session_to_record(row)

    async def touch_session(self, session_token: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(SessionRecord)
                .where(SessionRecord.session_token == session_token)
                .values(last_seen_at=datetime.now(timezone.utc))
            )
            await session.commit()
            return result.rowcount > 0

    async def delete_session(self, session_token: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SessionRecord).where(SessionRecord.session_token == session_token)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete_sessions_for_profile(self, profile_id: str) -> int:
        """Revoke every session of one profile."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SessionRecord).where(SessionRecord.profile_id == profile_id)
            )
            await session.commit()
            return result.rowcount

    async def delete_expired_sessions(self, cutoff: datetime) -> int:
        """Delete sessions created strictly before ``cutoff``."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SessionRecord).where(SessionRecord.created_at < cutoff)
            )
            await session.commit()
            return result.rowcount

    @staticmethod
    def _profile_to_record(row: UserProfile) -> StoredProfile:
        return StoredProfile(
            id=row.id,
            provider=row.provider,
            identifier=row.identifier,
            provider_data=dict(row.provider_data or {}),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _session_to_record(row: SessionRecord) -> StoredSession:
        return StoredSession(
            session_token=row.session_token,
            profile_id=row.profile_id,
            provider_token=row.provider_token,
            created_at=row.created_at,
            last_seen_at=row.last_seen_at,
        )

    @staticmethod
    async def _find_profile(session: AsyncSession, provider: str, identifier: str) -> Optional[UserProfile]:
        result = await session.execute(
            select(UserProfile).where(UserProfile.provider == provider, UserProfile.identifier == identifier)
        )
        return result.scalars().first()
