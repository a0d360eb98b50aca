"""
Customer ID allocation.

IDs come from a durable counter row, bumped with a single atomic upsert:

    INSERT INTO counters (name, value) VALUES (:key, 1)
    ON CONFLICT (name) DO UPDATE SET value = counters.value + 1
    RETURNING value

The first call creates the counter at 1; every later call returns the next
integer. The database serializes concurrent upserts on the row, so no two
callers (in any process) get the same value.
"""
import os
import logging

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from customer_service.customers.models import Counter
from customer_service.exceptions import DatabaseException

logger = logging.getLogger(__name__)

CUSTOMER_COUNTER_KEY = os.getenv("CUSTOMER_COUNTER_KEY", "customer-counter")
INITIAL_COUNTER_VALUE = 1

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class CustomerIdAllocator:
    """Hands out strictly increasing numeric customer IDs."""

    def __init__(self, counter_key: str = CUSTOMER_COUNTER_KEY):
        self.counter_key = counter_key

    async def next_id(self, db: AsyncSession) -> str:
        """
        Allocate the next customer ID.

        The increment is committed on its own, so an ID is never reused even
        if the caller later fails to save the customer.

        Returns:
            Decimal string of the new counter value

        Raises:
            DatabaseException: If the counter cannot be incremented
        """
        try:
            dialect = db.get_bind().dialect.name
            insert = _UPSERT_DIALECTS.get(dialect)
            if insert is None:
                raise DatabaseException(f"Atomic counters are not supported on '{dialect}'")

            stmt = (
                insert(Counter)
                .values(name=self.counter_key, value=INITIAL_COUNTER_VALUE)
                .on_conflict_do_update(
                    index_elements=[Counter.name],
                    set_={"value": Counter.value + 1},
                )
                .returning(Counter.value)
            )
            result = await db.execute(stmt)
            next_value = result.scalar_one()
            await db.commit()
        except DatabaseException:
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("Error generating customer ID from counter", exc_info=e)
            raise DatabaseException("Failed to generate customer ID", e) from e

        customer_id = str(next_value)
        logger.debug(f"Generated numeric customer ID: {customer_id}")
        return customer_id
