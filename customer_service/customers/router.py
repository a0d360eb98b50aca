"""
Customer router.

This module provides the FastAPI router for customer endpoints:
- Registration and login (public)
- Lookup and partial update (the customer themself, or an admin)
- Role update, deletion and listing (admin only)

Route-level roles are enforced by `AccessPolicyMiddleware`; the handlers
here add the ownership checks.
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from customer_service.auth.middleware import RBACMiddleware, get_current_identity
from customer_service.auth.models import Identity
from customer_service.base_microservice import BaseMicroservice, get_db_session
from customer_service.customers.schemas import (
    CustomerCreate,
    CustomerOut,
    CustomerPage,
    CustomerUpdate,
    LoginRequest,
    LoginResponse,
    RoleUpdate,
)
from customer_service.customers.service import CustomerService, to_out
from customer_service.exceptions import CustomerNotFoundException

# Create router
router = APIRouter(tags=["customers"])

# Create service instance
base_service = BaseMicroservice("customers")


def _parse_int(value: Optional[str]) -> Optional[int]:
    """Lenient query-parameter parsing; unparsable values count as missing."""
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


# --- Health Check ---

@router.get("/ping")
async def ping():
    """
    Health check endpoint for the customer service.
    """
    return base_service.mcp_response(
        message="Customer service is alive",
        data={"timestamp": datetime.now(timezone.utc).isoformat()}
    )


# --- Public Endpoints ---

@router.post("", response_model=CustomerOut, status_code=status.HTTP_201_CREATED)
async def create_customer(
    customer_data: CustomerCreate,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Register a new customer.

    Args:
        customer_data: Registration data
        db: Database session

    Returns:
        The created customer
    """
    base_service.logger.info(f"Resource: Creating customer with email: {customer_data.email}")
    customer = await CustomerService.create_customer(customer_data, db)

    base_service.log_event("customer.created", {"id": customer.id})
    return to_out(customer)


@router.post("/auth/login", response_model=LoginResponse)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db_session)
):
    """
    Validate a customer's email and password.

    Used by the API gateway during its login flow; the gateway issues the
    token from the returned identity summary.
    """
    base_service.logger.info("Resource: Authentication attempt")
    user_details = await CustomerService.authenticate(login_data.email, login_data.password, db)

    base_service.log_event("customer.login", {"id": user_details["id"]})
    return user_details


# --- Admin Endpoints ---

@router.get("", response_model=CustomerPage)
async def get_all_customers(
    page: Optional[str] = None,
    size: Optional[str] = None,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session)
):
    """
    List customers, one page at a time (admin only).

    Args:
        page: Zero-based page number (default 0)
        size: Page size (default 20, capped at 100)
        identity: Authenticated caller
        db: Database session

    Returns:
        The requested page
    """
    return await CustomerService.get_all_customers(_parse_int(page), _parse_int(size), db)


@router.put("/{customer_id}/role", response_model=CustomerOut)
async def update_customer_role(
    customer_id: str,
    role_data: RoleUpdate,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Change a customer's role (admin only). Body: {"role": "ADMIN" | "CUSTOMER"}.
    """
    customer = await CustomerService.update_customer_role(customer_id, role_data.role, db)

    base_service.log_event("customer.role.updated", {
        "admin_id": identity.subject_id,
        "id": customer_id,
        "role": customer.role.value
    })
    return to_out(customer)


@router.delete("/{customer_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_customer(
    customer_id: str,
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Delete a customer (admin only).
    """
    deleted = await CustomerService.delete_customer(customer_id, db)
    if not deleted:
        raise CustomerNotFoundException(f"Customer not found with ID: {customer_id}")

    base_service.log_event("customer.deleted", {
        "admin_id": identity.subject_id,
        "id": customer_id
    })
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# --- Customer or Admin Endpoints ---

@router.get("/email/{email}", response_model=CustomerOut)
async def get_customer_by_email(
    email: str,
    identity: Identity = Depends(RBACMiddleware.is_own_email_or_admin("email")),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Get a customer by email (the customer themself, or an admin).
    """
    customer = await CustomerService.get_customer_by_email(email, db)
    if customer is None:
        raise CustomerNotFoundException(f"Customer not found with email: {email}")
    return to_out(customer)


@router.get("/{customer_id}", response_model=CustomerOut)
async def get_customer_by_id(
    customer_id: str,
    identity: Identity = Depends(RBACMiddleware.is_self_or_admin("customer_id")),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Get a customer by ID (the customer themself, or an admin).
    """
    base_service.logger.info(f"Resource: Fetching customer with ID: {customer_id}")
    customer = await CustomerService.get_customer_by_id(customer_id, db)
    if customer is None:
        raise CustomerNotFoundException(f"Customer not found with ID: {customer_id}")
    return to_out(customer)


@router.put("/{customer_id}", response_model=CustomerOut)
async def update_customer(
    customer_id: str,
    update_data: CustomerUpdate,
    identity: Identity = Depends(RBACMiddleware.is_self_or_admin("customer_id")),
    db: AsyncSession = Depends(get_db_session)
):
    """
    Partially update a customer (the customer themself, or an admin).
    """
    customer = await CustomerService.update_customer(customer_id, update_data, db)

    base_service.log_event("customer.updated", {
        "id": customer_id,
        "by": identity.subject_id,
        "fields_updated": sorted(update_data.model_fields_set)
    })
    return to_out(customer)
