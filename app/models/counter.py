"""Counter model providing atomic human-readable sequence numbers."""

from sqlalchemy import Column, Integer, String
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import Base

_UPSERT_BUILDERS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


class Counter(Base):
    """
    Named monotonically increasing counter.

    Attributes:
        name: Counter name (e.g. "task_number")
        seq: Last value handed out
    """

    __tablename__ = "Counters"

    name = Column(String(50), primary_key=True)
    seq = Column(Integer, nullable=False, default=0)


async def next_sequence(db: AsyncSession, name: str) -> int:
    """
    Atomically increment a named counter and return the new value.

    Runs a single INSERT ... ON CONFLICT DO UPDATE ... RETURNING so the
    first use of a name creates it with seq=1 and concurrent callers never
    observe the same value.

    Args:
        db: Database session
        name: Counter name

    Returns:
        int: The incremented sequence value (1, 2, 3, ...)
    """
    dialect = db.get_bind().dialect.name
    builder = _UPSERT_BUILDERS.get(dialect)
    if builder is None:
        raise RuntimeError(f"next_sequence is not supported on dialect {dialect}")

    stmt = (
        builder(Counter)
        .values(name=name, seq=1)
        .on_conflict_do_update(
            index_elements=[Counter.name],
            set_={"seq": Counter.seq + 1},
        )
        .returning(Counter.seq)
    )
    result = await db.execute(stmt)
    return result.scalar_one()
