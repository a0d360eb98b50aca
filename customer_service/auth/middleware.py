"""
Authentication middleware.

This module provides:
- Bearer token authentication for every request
- Route-level role enforcement from the static policy table
- FastAPI dependencies for ownership checks (self or admin)
"""
import logging
from typing import Optional

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from customer_service.auth import policy
from customer_service.auth.jwt import TokenCodec, TokenValidationError, get_token_codec
from customer_service.auth.models import Identity
from customer_service.exceptions import (
    BadRequestException,
    ForbiddenException,
    UnauthorizedException,
    error_response,
)

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer "


def extract_token(request: Request) -> Optional[str]:
    """Return the bearer token from the Authorization header, if any."""
    header = request.headers.get(AUTHORIZATION_HEADER)
    if header and header.startswith(BEARER_PREFIX):
        token = header[len(BEARER_PREFIX):].strip()
        return token or None
    return None


def get_identity(request: Request) -> Optional[Identity]:
    return getattr(request.state, "identity", None)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Validates the bearer token, if present, and binds the caller's identity
    to `request.state.identity`.

    Requests without a token continue unauthenticated; the access policy
    decides whether the route needs one. Rejections never say which check
    failed.
    """
    def __init__(self, app, codec: Optional[TokenCodec] = None):
        super().__init__(app)
        self.codec = codec

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.identity = None
        try:
            token = extract_token(request)
            if token:
                claims = (self.codec or get_token_codec()).validate(token)
                request.state.identity = Identity(
                    subject_id=claims.subject_id,
                    email=claims.email,
                    role=claims.role,
                )
                logger.debug(f"JWT token validated for user: {claims.subject_id} (role: {claims.role.value})")
            else:
                logger.debug("No JWT token found in request")
        except TokenValidationError as e:
            logger.warning(f"JWT token validation failed: {type(e).__name__}")
            return error_response(
                status.HTTP_401_UNAUTHORIZED,
                "UnauthorizedException",
                "Invalid or expired token",
                request.url.path,
                headers={"WWW-Authenticate": "Bearer"},
            )
        except Exception as e:
            logger.error(f"Error processing JWT token: {e}", exc_info=e)
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "InternalServerException",
                "Internal server error",
                request.url.path,
            )

        return await call_next(request)


class AccessPolicyMiddleware(BaseHTTPMiddleware):
    """
    Enforces the route-level role table in `customer_service.auth.policy`.
    Must run after `AuthenticationMiddleware`.
    """
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        method, path = request.method, request.url.path
        roles = policy.required_roles(method, path)
        if roles:
            identity = get_identity(request)
            if identity is None:
                logger.warning(f"Unauthenticated request to protected route: {method} {path}")
                return error_response(
                    status.HTTP_401_UNAUTHORIZED,
                    "UnauthorizedException",
                    "Authentication required",
                    path,
                    headers={"WWW-Authenticate": "Bearer"},
                )
            if identity.role not in roles:
                logger.warning(
                    f"User {identity.subject_id} with role {identity.role.value} denied: {method} {path}"
                )
                return error_response(
                    status.HTTP_403_FORBIDDEN,
                    "ForbiddenException",
                    "Access denied",
                    path,
                )
        return await call_next(request)


async def get_current_identity(request: Request) -> Identity:
    """
    FastAPI dependency returning the authenticated caller.

    Raises:
        UnauthorizedException: If the request carries no valid token
    """
    identity = get_identity(request)
    if identity is None:
        raise UnauthorizedException("Authentication required")
    return identity


class RBACMiddleware:
    """
    Ownership checks, as FastAPI dependencies.

    The route table already admits CUSTOMER callers on these routes; the
    dependencies below narrow that to the caller's own record.
    """

    @staticmethod
    def is_self_or_admin(customer_id_param: str = "customer_id"):
        """
        Dependency to check the request targets the caller's own record, or
        comes from an admin.

        Args:
            customer_id_param: Name of the path parameter containing the customer ID

        Returns:
            Dependency function
        """
        async def verify_self_or_admin(request: Request) -> Identity:
            identity = await get_current_identity(request)

            target_id = request.path_params.get(customer_id_param)
            if target_id is None:
                raise BadRequestException(f"Missing customer ID parameter: {customer_id_param}")

            if not policy.is_self_or_admin(identity, target_id):
                logger.warning(
                    f"Customer {identity.subject_id} attempted to access another customer's data: {target_id}"
                )
                raise ForbiddenException("Permission denied: can only access own customer record")

            return identity

        return verify_self_or_admin

    @staticmethod
    def is_own_email_or_admin(email_param: str = "email"):
        """
        Dependency to check an email-addressed request targets the caller's
        own email, or comes from an admin.
        """
        async def verify_own_email_or_admin(request: Request) -> Identity:
            identity = await get_current_identity(request)

            email = request.path_params.get(email_param)
            if email is None:
                raise BadRequestException(f"Missing email parameter: {email_param}")

            if not policy.is_own_email_or_admin(identity, email):
                logger.warning(
                    f"Customer {identity.subject_id} attempted to access another customer's data by email"
                )
                raise ForbiddenException("Permission denied: can only access own customer record")

            return identity

        return verify_own_email_or_admin
