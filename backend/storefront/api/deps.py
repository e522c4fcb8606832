"""
FastAPI dependencies for authentication and service wiring.

This module provides the bearer-token identity dependency, the admin role
check, the request-scoped database session and factories assembling the
delivery service and the order orchestrator for a request.
"""

from typing import Annotated, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.cache.redis_client import peek_redis_client
from storefront.core.config import get_settings
from storefront.core.logging import get_logger, set_customer_id
from storefront.core.security import TokenError, TokenIdentity, decode_access_token
from storefront.database.connection import get_db
from storefront.services.delivery.pincode_resolver import (
    PincodeResolver,
    build_pincode_resolver,
)
from storefront.services.delivery.repository import DeliveryRepository
from storefront.services.delivery.service import DeliveryService
from storefront.services.orders.service import OrderOrchestrator
from storefront.services.payments.gateway import PaymentGateway, StripePaymentGateway
from storefront.services.payments.stripe_client import get_stripe_client

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)

limiter = Limiter(key_func=get_remote_address)


async def get_current_identity(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> TokenIdentity:
    """
    Validate the bearer token and return the caller's identity.

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        logger.warning("Authentication failed: No credentials provided")
        raise credentials_exception

    try:
        identity = decode_access_token(credentials.credentials)
    except TokenError as e:
        logger.warning(
            "Authentication failed",
            code=e.code,
            error=e.message,
        )
        raise credentials_exception from e

    set_customer_id(str(identity.customer_id))
    return identity


async def require_admin(
    identity: Annotated[TokenIdentity, Depends(get_current_identity)],
) -> TokenIdentity:
    """
    Raises:
        HTTPException: 403 if the caller is not an administrator
    """
    if not identity.is_admin:
        logger.warning(
            "Access denied: Insufficient permissions",
            customer_id=str(identity.customer_id),
            role=identity.role,
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator access required",
        )
    return identity


def get_pincode_resolver(request: Request) -> PincodeResolver:
    """Resolver using the shared Redis and HTTP clients when available."""
    return build_pincode_resolver(
        get_settings(),
        redis_client=peek_redis_client(),
        http_client=getattr(request.app.state, "http_client", None),
    )


async def get_delivery_service(
    db: Annotated[AsyncSession, Depends(get_db)],
    resolver: Annotated[PincodeResolver, Depends(get_pincode_resolver)],
) -> DeliveryService:
    return DeliveryService(
        resolver,
        DeliveryRepository(db),
        free_shipping_threshold=get_settings().free_shipping_threshold,
    )


def get_payment_gateway() -> PaymentGateway:
    return StripePaymentGateway(get_stripe_client())


async def get_order_orchestrator(
    db: Annotated[AsyncSession, Depends(get_db)],
    delivery: Annotated[DeliveryService, Depends(get_delivery_service)],
    gateway: Annotated[PaymentGateway, Depends(get_payment_gateway)],
) -> OrderOrchestrator:
    return OrderOrchestrator(
        db,
        delivery=delivery,
        gateway=gateway,
        currency=get_settings().currency,
    )


DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
CurrentIdentity = Annotated[TokenIdentity, Depends(get_current_identity)]
AdminIdentity = Annotated[TokenIdentity, Depends(require_admin)]
Delivery = Annotated[DeliveryService, Depends(get_delivery_service)]
Orchestrator = Annotated[OrderOrchestrator, Depends(get_order_orchestrator)]
Gateway = Annotated[PaymentGateway, Depends(get_payment_gateway)]
