"""
Customer persistence.

Customers are stored as JSON documents keyed by ID, with the lowercased email
copied into an indexed, unique column for lookups. Every database failure is
re-raised as `DatabaseException`.
"""
import logging
from typing import List, Optional

from sqlalchemy import BigInteger, cast, delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from customer_service.customers.models import CustomerDocument
from customer_service.customers.schemas import Customer, normalize_email
from customer_service.exceptions import BadRequestException, DatabaseException

logger = logging.getLogger(__name__)


class CustomerRepository:
    """CRUD over customer documents for one session."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_id(self, customer_id: str) -> Optional[Customer]:
        try:
            row = await self.db.get(CustomerDocument, customer_id)
        except SQLAlchemyError as e:
            raise self._failure(f"Failed to fetch customer: {customer_id}", e)
        return self._to_customer(row)

    async def find_by_email(self, email: str) -> Optional[Customer]:
        try:
            result = await self.db.execute(
                select(CustomerDocument).where(CustomerDocument.email == normalize_email(email))
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise self._failure("Failed to fetch customer by email", e)
        return self._to_customer(row)

    async def exists_by_id(self, customer_id: str) -> bool:
        try:
            result = await self.db.execute(
                select(CustomerDocument.id).where(CustomerDocument.id == customer_id)
            )
            return result.first() is not None
        except SQLAlchemyError as e:
            raise self._failure(f"Failed to check customer existence: {customer_id}", e)

    async def exists_by_email(self, email: str) -> bool:
        try:
            result = await self.db.execute(
                select(CustomerDocument.id).where(CustomerDocument.email == normalize_email(email))
            )
            return result.first() is not None
        except SQLAlchemyError as e:
            raise self._failure("Failed to check customer existence by email", e)

    async def save(self, customer: Customer) -> Customer:
        """Insert or replace the customer's document."""
        document = customer.model_dump(mode="json")
        try:
            row = await self.db.get(CustomerDocument, customer.id)
            if row is None:
                self.db.add(CustomerDocument(id=customer.id, email=normalize_email(customer.email), document=document))
            else:
                row.email = normalize_email(customer.email)
                row.document = document
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.warning(f"Unique constraint violated saving customer: {customer.id}")
            raise BadRequestException("Email already registered", e)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._failure(f"Failed to save customer: {customer.id}", e)
        return customer

    async def delete_by_id(self, customer_id: str) -> None:
        try:
            await self.db.execute(
                delete(CustomerDocument).where(CustomerDocument.id == customer_id)
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise self._failure(f"Failed to delete customer: {customer_id}", e)

    async def find_page(self, page: int, size: int) -> List[Customer]:
        """One page of customers, ordered by numeric ID."""
        try:
            result = await self.db.execute(
                select(CustomerDocument)
                .order_by(cast(CustomerDocument.id, BigInteger))
                .offset(page * size)
                .limit(size)
            )
            rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise self._failure("Failed to fetch customers", e)
        return [self._to_customer(row) for row in rows]

    async def count(self) -> int:
        try:
            result = await self.db.execute(select(func.count()).select_from(CustomerDocument))
            return result.scalar_one()
        except SQLAlchemyError as e:
            raise self._failure("Failed to count customers", e)

    @staticmethod
    def _to_customer(row: Optional[CustomerDocument]) -> Optional[Customer]:
        if row is None:
            return None
        return Customer.model_validate(row.document)

    @staticmethod
    def _failure(message: str, error: Exception) -> DatabaseException:
        logger.error(f"{message}: {error}", exc_info=error)
        return DatabaseException(f"{message}: {error.__class__.__name__}", error)
