import logging
from typing import Optional

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, select, text
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine

from src.domain.exceptions import ResultStoreException
from src.domain.models import FleetAnalysis

logger = logging.getLogger(__name__)

# Only the most recent run is kept; every write upserts this row.
LATEST_RUN_ID = "latest"

# SQLAlchemy core Table definition
metadata = MetaData()
runs_table = Table(
    'fleet_analysis_runs', metadata,
    Column('id', String, primary_key=True),
    Column('analyzed_at', DateTime(timezone=True), nullable=False),
    Column('successful_analyses', Integer, nullable=False),
    Column('failed_analyses', Integer, nullable=False),
    Column('payload', JSONB, nullable=False),
    Column('stored_at', DateTime(timezone=True), server_default=text('NOW()')),
)

class PostgresResultStore:
    """
    Result store backed by PostgreSQL.
    Persists the latest fleet analysis as a JSONB document.
    """

    def __init__(self, db_url: str):
        self.engine = create_async_engine(db_url, echo=False)

    async def initialize(self) -> None:
        """Creates the runs table if it does not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(metadata.create_all)

    async def store(self, analysis: FleetAnalysis) -> None:
        """
        Upserts the given analysis as the latest run. Writing the same analysis
        twice leaves a single row with the same content.

        Raises:
            ResultStoreException: if the database rejects the write.
        """
        values = {
            'id': LATEST_RUN_ID,
            'analyzed_at': analysis.timestamp,
            'successful_analyses': len(analysis.successful),
            'failed_analyses': len(analysis.failed),
            'payload': analysis.model_dump(mode="json"),
        }

        try:
            async with self.engine.begin() as conn:
                stmt = insert(runs_table).values(values)
                upsert_stmt = stmt.on_conflict_do_update(
                    index_elements=['id'],
                    set_={
                        'analyzed_at': stmt.excluded.analyzed_at,
                        'successful_analyses': stmt.excluded.successful_analyses,
                        'failed_analyses': stmt.excluded.failed_analyses,
                        'payload': stmt.excluded.payload,
                        'stored_at': text('NOW()'),
                    },
                )
                await conn.execute(upsert_stmt)
        except SQLAlchemyError as e:
            raise ResultStoreException(f"Failed to store fleet analysis: {e}") from e

    async def load_latest(self) -> Optional[FleetAnalysis]:
        try:
            async with self.engine.begin() as conn:
                result = await conn.execute(
                    select(runs_table.c.payload).where(runs_table.c.id == LATEST_RUN_ID)
                )
                payload = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise ResultStoreException(f"Failed to load fleet analysis: {e}") from e

        if payload is None:
            return None
        return FleetAnalysis.model_validate(payload)

    async def close(self) -> None:
        await self.engine.dispose()


class InMemoryResultStore:
    """Process-local result store used when no DATABASE_URL is configured."""

    def __init__(self) -> None:
        self._latest: Optional[FleetAnalysis] = None

    async def initialize(self) -> None:
        return None

    async def store(self, analysis: FleetAnalysis) -> None:
        self._latest = analysis

    async def load_latest(self) -> Optional[FleetAnalysis]:
        return self._latest

    async def close(self) -> None:
        return None
