"""
Customer management service.

This module provides functionality for:
- Customer registration (server-generated IDs, hashed passwords)
- Customer lookup by ID and email
- Partial updates and the admin-only role update
- Deletion and paginated listing
- Credential checks for the login flow
"""
import math
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from customer_service.auth.models import Role
from customer_service.customers.id_allocator import CustomerIdAllocator
from customer_service.customers.models import get_password_hash, verify_password
from customer_service.customers.repository import CustomerRepository
from customer_service.customers.schemas import (
    Customer,
    CustomerCreate,
    CustomerOut,
    CustomerPage,
    CustomerUpdate,
)
from customer_service.exceptions import (
    BadRequestException,
    CustomerNotFoundException,
    UnauthorizedException,
)

logger = logging.getLogger(__name__)

DEFAULT_ROLE = Role.CUSTOMER
DEFAULT_PAGE = 0
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

id_allocator = CustomerIdAllocator()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _is_blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


def normalize_page_request(page: Optional[int], size: Optional[int]) -> Tuple[int, int]:
    """
    Clamp paging parameters.

    Missing values take the defaults; sizes above the maximum are capped,
    sizes below 1 fall back to the default, and negative pages become 0.
    """
    if size is None:
        size = DEFAULT_PAGE_SIZE
    elif size > MAX_PAGE_SIZE:
        logger.warning(f"Requested page size exceeds maximum ({MAX_PAGE_SIZE}), capping to {MAX_PAGE_SIZE}")
        size = MAX_PAGE_SIZE
    elif size < 1:
        logger.warning(f"Invalid page size, defaulting to {DEFAULT_PAGE_SIZE}")
        size = DEFAULT_PAGE_SIZE

    if page is None:
        page = DEFAULT_PAGE
    elif page < 0:
        logger.warning("Invalid page number, defaulting to 0")
        page = DEFAULT_PAGE

    return page, size


def to_out(customer: Customer) -> CustomerOut:
    """Outward representation; never carries the password hash."""
    return CustomerOut.model_validate(customer, from_attributes=True)


class CustomerService:
    """
    Service for customer management operations.
    """
    @staticmethod
    async def create_customer(
        customer_data: CustomerCreate,
        db: AsyncSession
    ) -> Customer:
        """
        Register a new customer.

        Any client-supplied ID or role is ignored: the ID is allocated from
        the durable counter and the role is always CUSTOMER.

        Args:
            customer_data: Registration data
            db: Database session

        Returns:
            The stored customer

        Raises:
            BadRequestException: If the password is missing or the email is taken
            DatabaseException: If the ID cannot be allocated or the save fails
        """
        logger.info(f"Creating customer with email: {customer_data.email}")
        repository = CustomerRepository(db)

        if not _is_blank(customer_data.id):
            logger.warning(
                f"Client provided ID '{customer_data.id}' will be ignored. Server will generate unique ID."
            )
        if not _is_blank(customer_data.role):
            logger.warning(
                f"Client provided role '{customer_data.role}' will be ignored. "
                f"All new customers default to '{DEFAULT_ROLE.value}'."
            )

        if _is_blank(customer_data.password):
            logger.warning("No password provided for customer creation")
            raise BadRequestException("Password is required for customer creation")

        if await repository.exists_by_email(customer_data.email):
            raise BadRequestException("Email already registered")

        # Hash before touching the counter so a rejected password does not burn an ID
        password_hash = get_password_hash(customer_data.password)

        customer_id = await id_allocator.next_id(db)
        now = _now()
        customer = Customer(
            id=customer_id,
            email=customer_data.email,
            password_hash=password_hash,
            role=DEFAULT_ROLE,
            first_name=customer_data.first_name,
            last_name=customer_data.last_name,
            phone=customer_data.phone,
            addresses=customer_data.addresses or [],
            favorite_restaurants=customer_data.favorite_restaurants or [],
            created_at=now,
            updated_at=now,
        )

        saved = await repository.save(customer)
        logger.info(f"Customer created with ID: {saved.id}")
        return saved

    @staticmethod
    async def get_customer_by_id(
        customer_id: str,
        db: AsyncSession
    ) -> Optional[Customer]:
        """Get customer by ID, or None if not found."""
        logger.debug(f"Fetching customer with ID: {customer_id}")
        return await CustomerRepository(db).find_by_id(customer_id)

    @staticmethod
    async def get_customer_by_email(
        email: str,
        db: AsyncSession
    ) -> Optional[Customer]:
        """Get customer by email, or None if not found."""
        logger.debug("Fetching customer by email")
        return await CustomerRepository(db).find_by_email(email)

    @staticmethod
    async def customer_exists_by_email(
        email: str,
        db: AsyncSession
    ) -> bool:
        return await CustomerRepository(db).exists_by_email(email)

    @staticmethod
    async def update_customer(
        customer_id: str,
        update_data: CustomerUpdate,
        db: AsyncSession
    ) -> Customer:
        """
        Apply a partial update to an existing customer.

        Merge rules:
        - email, first_name, last_name: applied only when non-blank
        - phone: applied whenever present in the request; null clears it
        - password: re-hashed only when non-blank
        - addresses, favorite_restaurants: replaced wholesale when present and non-null
        - role and id: ignored (logged)

        Args:
            customer_id: Customer ID from the path
            update_data: Fields to update
            db: Database session

        Returns:
            The updated customer

        Raises:
            CustomerNotFoundException: If the customer does not exist
            BadRequestException: If the new email belongs to another customer
        """
        logger.info(f"Updating customer with ID: {customer_id}")
        repository = CustomerRepository(db)
        provided = update_data.model_fields_set

        if update_data.id is not None and update_data.id != customer_id:
            logger.warning(
                f"ID '{update_data.id}' in request body does not match path parameter "
                f"'{customer_id}'. Path parameter ID will be used."
            )

        existing = await repository.find_by_id(customer_id)
        if existing is None:
            logger.warning(f"Customer not found with ID: {customer_id}")
            raise CustomerNotFoundException(f"Customer not found with ID: {customer_id}")

        changes = {}

        if not _is_blank(update_data.email) and update_data.email != existing.email:
            owner = await repository.find_by_email(update_data.email)
            if owner is not None and owner.id != customer_id:
                raise BadRequestException("Email already registered")
            changes["email"] = update_data.email

        if not _is_blank(update_data.first_name):
            changes["first_name"] = update_data.first_name

        if not _is_blank(update_data.last_name):
            changes["last_name"] = update_data.last_name

        if "phone" in provided:
            changes["phone"] = update_data.phone

        if not _is_blank(update_data.password):
            changes["password_hash"] = get_password_hash(update_data.password)
            logger.debug(f"Password updated for customer: {customer_id}")

        if update_data.role is not None and Role.parse(update_data.role) != existing.role:
            logger.warning(
                f"Role update attempted via update API for customer: {customer_id}. "
                "Role updates are not allowed here; use the role update API instead."
            )

        if update_data.addresses is not None:
            changes["addresses"] = update_data.addresses

        if update_data.favorite_restaurants is not None:
            changes["favorite_restaurants"] = update_data.favorite_restaurants

        changes["updated_at"] = _now()
        logger.debug(f"Updating fields {sorted(changes)} for customer: {customer_id}")

        updated = await repository.save(existing.model_copy(update=changes))
        logger.info(f"Customer updated with ID: {updated.id}")
        return updated

    @staticmethod
    async def update_customer_role(
        customer_id: str,
        new_role: Optional[str],
        db: AsyncSession
    ) -> Customer:
        """
        Change a customer's role (admin-only operation).

        Args:
            customer_id: Customer ID
            new_role: Role name, case-insensitive
            db: Database session

        Returns:
            The updated customer

        Raises:
            BadRequestException: If the role is blank or not one of the known roles
            CustomerNotFoundException: If the customer does not exist
        """
        logger.info(f"Updating role for customer ID: {customer_id} to role: {new_role}")

        if _is_blank(new_role):
            raise BadRequestException("Role cannot be null or empty")

        role = Role.parse(new_role)
        if role is None:
            valid_roles = [r.value for r in Role]
            raise BadRequestException(f"Invalid role: {new_role}. Valid roles: {valid_roles}")

        repository = CustomerRepository(db)
        existing = await repository.find_by_id(customer_id)
        if existing is None:
            logger.warning(f"Customer not found with ID: {customer_id}")
            raise CustomerNotFoundException(f"Customer not found with ID: {customer_id}")

        updated = await repository.save(existing.model_copy(update={"role": role, "updated_at": _now()}))
        logger.info(f"Role updated for customer ID: {updated.id} to role: {updated.role.value}")
        return updated

    @staticmethod
    async def delete_customer(
        customer_id: str,
        db: AsyncSession
    ) -> bool:
        """
        Delete customer by ID.

        Returns:
            True if the customer was deleted, False if not found
        """
        logger.info(f"Deleting customer with ID: {customer_id}")
        repository = CustomerRepository(db)

        if not await repository.exists_by_id(customer_id):
            logger.warning(f"Customer not found with ID: {customer_id}")
            return False

        await repository.delete_by_id(customer_id)
        logger.info(f"Customer deleted with ID: {customer_id}")
        return True

    @staticmethod
    async def get_all_customers(
        page: Optional[int],
        size: Optional[int],
        db: AsyncSession
    ) -> CustomerPage:
        """
        Get one page of customers, ordered by ID.

        Args:
            page: Zero-based page number
            size: Page size (1-100, default 20)
            db: Database session

        Returns:
            The requested page
        """
        page, size = normalize_page_request(page, size)
        logger.info(f"Fetching customers - page: {page}, size: {size}")

        repository = CustomerRepository(db)
        total = await repository.count()
        customers = await repository.find_page(page, size)

        return CustomerPage(
            content=[to_out(c) for c in customers],
            page=page,
            size=size,
            total_elements=total,
            total_pages=math.ceil(total / size) if total else 0,
        )

    @staticmethod
    async def authenticate(
        email: Optional[str],
        password: Optional[str],
        db: AsyncSession
    ) -> Dict[str, str]:
        """
        Check a customer's credentials.

        Unknown emails and wrong passwords fail with the same message.

        Returns:
            Dict with the customer's id, email and role

        Raises:
            BadRequestException: If email or password is missing
            UnauthorizedException: If the credentials do not match
        """
        if _is_blank(email) or _is_blank(password):
            logger.warning("Login attempt with missing email or password")
            raise BadRequestException("Email and password are required")

        customer = await CustomerRepository(db).find_by_email(email)
        if customer is None or not verify_password(password, customer.password_hash):
            logger.warning("Authentication failed: invalid credentials")
            raise UnauthorizedException("Invalid email or password")

        return {
            "id": customer.id,
            "email": customer.email,
            "role": customer.role.value,
        }
