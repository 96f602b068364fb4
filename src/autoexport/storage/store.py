"""Async persistence for auto-export bindings."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Self

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlmodel import SQLModel, col

from autoexport.config import StorageConfig
from autoexport.log import get_logger
from autoexport.storage.models import AutoExportBinding


if TYPE_CHECKING:
    from collections.abc import Iterable
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncEngine

    from autoexport.models import RunStatus, ScopeType


logger = get_logger(__name__)


class BindingStore:
    """Stores bindings in a SQL database.

    Every write runs in its own transaction and touches only the rows it names.
    """

    def __init__(self, config: StorageConfig | None = None, engine: AsyncEngine | None = None):
        """Initialize the store.

        Args:
            config: Storage configuration, used when no engine is given
            engine: Existing async engine to use
        """
        self.config = config or StorageConfig()
        self.engine = engine or self.config.get_engine()
        self._sessions = async_sessionmaker(self.engine, expire_on_commit=False)

    async def __aenter__(self) -> Self:
        await self.init()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def init(self) -> None:
        """Create the binding table if it does not exist."""
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)

    async def close(self) -> None:
        await self.engine.dispose()

    async def get(self, path: str) -> AutoExportBinding | None:
        async with self._sessions() as session:
            return await session.get(AutoExportBinding, path)

    async def list_bindings(self) -> list[AutoExportBinding]:
        """All bindings, ordered by path."""
        stmt = sa.select(AutoExportBinding).order_by(col(AutoExportBinding.path))
        async with self._sessions() as session:
            return list((await session.scalars(stmt)).all())

    async def list_paths(self, scope_type: ScopeType, ids: Iterable[int]) -> list[str]:
        """Paths of the bindings for the given scopes."""
        ids = list(ids)
        if not ids:
            return []
        stmt = (
            sa.select(AutoExportBinding.path)
            .where(col(AutoExportBinding.scope_type) == scope_type)
            .where(col(AutoExportBinding.scope_id).in_(ids))
            .order_by(col(AutoExportBinding.path))
        )
        async with self._sessions() as session:
            return list((await session.scalars(stmt)).all())

    async def pending_paths(self) -> list[str]:
        """Paths of bindings whose last run did not finish cleanly."""
        stmt = (
            sa.select(AutoExportBinding.path)
            .where(col(AutoExportBinding.status) != "done")
            .order_by(col(AutoExportBinding.path))
        )
        async with self._sessions() as session:
            return list((await session.scalars(stmt)).all())

    async def upsert(self, binding: AutoExportBinding) -> AutoExportBinding:
        """Insert or replace a binding."""
        async with self._sessions() as session, session.begin():
            merged = await session.merge(binding)
        logger.debug("Stored binding", path=merged.path, exporter=merged.exporter_id)
        return merged

    async def set_status(
        self,
        paths: str | Iterable[str],
        status: RunStatus,
        *,
        error: str | None = None,
        touch: bool = False,
    ) -> None:
        """Update status (and optionally error and finish time) of bindings.

        Args:
            paths: Binding path(s) to update
            status: New status
            error: New error message, left unchanged if None
            touch: Record the current time as the finish time
        """
        paths = [paths] if isinstance(paths, str) else list(paths)
        if not paths:
            return
        values: dict[str, Any] = {"status": status}
        if error is not None:
            values["error"] = error
        if touch:
            values["updated"] = datetime.now(UTC)
        stmt = (
            sa.update(AutoExportBinding)
            .where(col(AutoExportBinding.path).in_(paths))
            .values(**values)
        )
        async with self._sessions() as session, session.begin():
            await session.execute(stmt)

    async def delete(self, paths: Iterable[str]) -> None:
        paths = list(paths)
        if not paths:
            return
        stmt = sa.delete(AutoExportBinding).where(col(AutoExportBinding.path).in_(paths))
        async with self._sessions() as session, session.begin():
            await session.execute(stmt)

    async def delete_all(self) -> None:
        async with self._sessions() as session, session.begin():
            await session.execute(sa.delete(AutoExportBinding))
