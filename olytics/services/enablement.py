"""
Aggregation enablement — which aggregations run for which account/group.

Backed by the ``aggregation_settings`` table.  Aggregations only see the
``is_enabled`` coroutine; the toggles are driven from the admin routes.
"""

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from olytics.models.aggregation_setting import AggregationSetting

logger = logging.getLogger(__name__)


class EnablementService:
    """Reads and writes aggregation enablement rows."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], default_enabled: bool = False):
        self._session_factory = session_factory
        self.default_enabled = default_enabled

    async def is_enabled(self, aggregation: str, account_key: str, group_key: str) -> bool:
        async with self._session_factory() as session:
            enabled = (
                await session.execute(
                    select(AggregationSetting.enabled).where(
                        AggregationSetting.aggregation == aggregation,
                        AggregationSetting.account_key == account_key,
                        AggregationSetting.group_key == group_key,
                    )
                )
            ).scalar_one_or_none()

        if enabled is None:
            return self.default_enabled
        return bool(enabled)

    async def set_enabled(
        self,
        aggregation: str,
        account_key: str,
        group_key: str,
        enabled: bool,
    ) -> AggregationSetting:
        """Create or update the row for this aggregation/account/group."""
        async with self._session_factory() as session:
            row = await self._find(session, aggregation, account_key, group_key)

            if row is None:
                row = AggregationSetting(
                    aggregation=aggregation,
                    account_key=account_key,
                    group_key=group_key,
                    enabled=enabled,
                )
                session.add(row)
                try:
                    await session.commit()
                except IntegrityError:
                    # A concurrent request inserted the row first.
                    await session.rollback()
                    row = await self._find(session, aggregation, account_key, group_key)
                    if row is None:
                        raise
                    row.enabled = enabled
                    await session.commit()
            else:
                row.enabled = enabled
                await session.commit()

            await session.refresh(row)

        logger.info(
            "%s %s for %s/%s",
            "✅ Enabled" if enabled else "⏸️  Disabled",
            aggregation, account_key, group_key,
        )
        return row

    async def _find(
        self,
        session: AsyncSession,
        aggregation: str,
        account_key: str,
        group_key: str,
    ) -> AggregationSetting | None:
        return (
            await session.execute(
                select(AggregationSetting).where(
                    AggregationSetting.aggregation == aggregation,
                    AggregationSetting.account_key == account_key,
                    AggregationSetting.group_key == group_key,
                )
            )
        ).scalar_one_or_none()

    async def list_settings(self, aggregation: str | None = None) -> list[AggregationSetting]:
        stmt = select(AggregationSetting).order_by(
            AggregationSetting.aggregation,
            AggregationSetting.account_key,
            AggregationSetting.group_key,
        )
        if aggregation:
            stmt = stmt.where(AggregationSetting.aggregation == aggregation)

        async with self._session_factory() as session:
            return list((await session.execute(stmt)).scalars().all())
