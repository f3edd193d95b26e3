"""
Persistence retry wrapper untuk AuthEngine.

Membungkus satu commit dengan deteksi optimistic concurrency conflict
(StaleDataError dari version_id_col) dan retry yang dibatasi dengan
exponential backoff.

Perubahan yang tertunda di session harus belum di-flush saat commit()
dipanggil, karena wrapper mengambil snapshot dari attribute history.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple, Type

from sqlalchemy import inspect
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.ext.asyncio import AsyncSession

from authengine.core.config import RetryPolicy
from authengine.core.exceptions import ConflictError, UnsupportedConflictError

logger = logging.getLogger(__name__)

NEW = "new"
DIRTY = "dirty"
DELETED = "deleted"


@dataclass
class PendingWrite:
    """Snapshot dari satu perubahan sebelum commit."""
    instance: Any
    kind: str
    identity: Optional[Tuple[Any, ...]] = None
    changes: Dict[str, Any] = field(default_factory=dict)
    original_version: Any = None


def _version_key(mapper) -> Optional[str]:
    if mapper.version_id_col is None:
        return None
    return mapper.get_property_by_column(mapper.version_id_col).key


class PersistenceRetryWrapper:
    """
    Commit dengan optimistic concurrency retry.

    Conflict pada managed entity types di-rebase: nilai authoritative di-reload
    dari store, perubahan asli diterapkan ulang di atasnya, lalu commit diulang.
    Conflict pada entity type lain di-raise sebagai UnsupportedConflictError.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        *managed_types: Type[Any],
        sleep: Callable[[float], None] = time.sleep,
        async_sleep: Callable[[float], Any] = asyncio.sleep
    ):
        """
        Initialize retry wrapper.

        Args:
            policy: Retry policy
            managed_types: Entity types yang boleh di-rebase saat conflict
            sleep: Blocking sleep function
            async_sleep: Async sleep function
        """
        self.policy = policy or RetryPolicy()
        self.managed_types = tuple(managed_types)
        self._sleep = sleep
        self._async_sleep = async_sleep

    def is_managed(self, entity_type: Type[Any]) -> bool:
        """Check apakah entity type dikelola wrapper ini."""
        return any(issubclass(entity_type, managed) for managed in self.managed_types)

    # Snapshot helpers
    def snapshot(self, session: Any) -> List[PendingWrite]:
        """
        Ambil snapshot dari semua perubahan yang belum di-commit.

        Args:
            session: Session atau AsyncSession

        Returns:
            List of PendingWrite
        """
        writes: List[PendingWrite] = []

        for obj in list(session.new):
            writes.append(PendingWrite(instance=obj, kind=NEW))

        for obj in list(session.dirty):
            if not session.is_modified(obj):
                continue
            state = inspect(obj)
            version_key = _version_key(state.mapper)
            changes = {}
            for attr in state.mapper.column_attrs:
                if attr.key == version_key:
                    continue
                history = state.attrs[attr.key].history
                if history.has_changes():
                    changes[attr.key] = history.added[0] if history.added else None
            writes.append(PendingWrite(
                instance=obj,
                kind=DIRTY,
                identity=state.identity,
                changes=changes,
                original_version=self._original_version(state, version_key)
            ))

        for obj in list(session.deleted):
            state = inspect(obj)
            writes.append(PendingWrite(
                instance=obj,
                kind=DELETED,
                identity=state.identity,
                original_version=self._original_version(state, _version_key(state.mapper))
            ))

        return writes

    @staticmethod
    def _original_version(state, version_key: Optional[str]) -> Any:
        if version_key is None:
            return None
        history = state.attrs[version_key].history
        if history.deleted:
            return history.deleted[0]
        if history.unchanged:
            return history.unchanged[0]
        return None

    def _no_changes(self) -> bool:
        if self.policy.zero_rows_as_success:
            logger.debug("Commit affected zero records; treated as success")
            return True
        logger.info("Commit affected zero records; reported as failure")
        return False

    def _is_conflicting(self, write: PendingWrite, fresh: Any) -> bool:
        if fresh is None:
            return True
        if write.original_version is None:
            return False
        version_key = _version_key(inspect(fresh).mapper)
        return getattr(fresh, version_key) != write.original_version

    def _apply(self, write: PendingWrite, fresh: Any) -> bool:
        """
        Terapkan ulang satu write di atas fresh values.

        Returns:
            False jika row sudah tidak ada

        Raises:
            UnsupportedConflictError: Jika conflict pada entity type yang tidak dikelola
        """
        entity_type = type(write.instance)
        if self._is_conflicting(write, fresh) and not self.is_managed(entity_type):
            raise UnsupportedConflictError(entity_type.__name__)

        if fresh is None:
            logger.warning(
                "%s %s no longer exists; giving up commit",
                entity_type.__name__, write.identity
            )
            return False

        if write.kind == DIRTY:
            for key, value in write.changes.items():
                setattr(fresh, key, value)
        return True

    def _log_conflict(self, attempt: int, error: StaleDataError) -> None:
        logger.info(
            "Concurrency conflict on commit (attempt %s/%s): %s",
            attempt, self.policy.max_attempts, error
        )

    def _log_exhausted(self) -> None:
        logger.warning(
            "Commit abandoned after %s conflicting attempts", self.policy.max_attempts
        )

    # Blocking convention
    def commit(self, session: Session, mutation: Optional[Callable[[], Any]] = None) -> bool:
        """
        Commit perubahan session dengan retry pada concurrency conflict.

        Args:
            session: SQLAlchemy session
            mutation: Optional callable yang menerapkan perubahan sebelum commit

        Returns:
            True jika commit berhasil, False untuk soft failure
            (zero records, row hilang, retry habis)

        Raises:
            UnsupportedConflictError: Conflict pada unmanaged entity type
            ConflictError: Integrity violation (misal duplicate unique key)
        """
        if mutation is not None:
            mutation()

        writes = self.snapshot(session)
        if not writes:
            return self._no_changes()

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                session.commit()
                return True
            except StaleDataError as e:
                session.rollback()
                self._log_conflict(attempt, e)
                if attempt == self.policy.max_attempts:
                    break
                if not self._rebase(session, writes):
                    return False
                self._sleep(self.policy.backoff_for(attempt))
            except IntegrityError as e:
                session.rollback()
                raise ConflictError("Integrity constraint violated", details={"error": str(e.orig)}) from e

        self._log_exhausted()
        return False

    def _rebase(self, session: Session, writes: List[PendingWrite]) -> bool:
        for write in writes:
            if write.kind == NEW:
                session.add(write.instance)
                continue
            fresh = session.get(type(write.instance), write.identity, populate_existing=True)
            if not self._apply(write, fresh):
                return False
            if write.kind == DELETED:
                session.delete(fresh)
        return True

    # Async convention
    async def commit_async(
        self,
        session: AsyncSession,
        mutation: Optional[Callable[[], Any]] = None
    ) -> bool:
        """
        Async variant dari commit().

        Args:
            session: SQLAlchemy async session
            mutation: Optional callable yang menerapkan perubahan sebelum commit

        Returns:
            True jika commit berhasil, False untuk soft failure
        """
        if mutation is not None:
            mutation()

        writes = self.snapshot(session)
        if not writes:
            return self._no_changes()

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                await session.commit()
                return True
            except StaleDataError as e:
                await session.rollback()
                self._log_conflict(attempt, e)
                if attempt == self.policy.max_attempts:
                    break
                if not await self._rebase_async(session, writes):
                    return False
                await self._async_sleep(self.policy.backoff_for(attempt))
            except IntegrityError as e:
                await session.rollback()
                raise ConflictError("Integrity constraint violated", details={"error": str(e.orig)}) from e

        self._log_exhausted()
        return False

    async def _rebase_async(self, session: AsyncSession, writes: List[PendingWrite]) -> bool:
        for write in writes:
            if write.kind == NEW:
                session.add(write.instance)
                continue
            fresh = await session.get(type(write.instance), write.identity, populate_existing=True)
            if not self._apply(write, fresh):
                return False
            if write.kind == DELETED:
                await session.delete(fresh)
        return True
