"""
Shared FastAPI dependencies.
"""
from typing import Optional
from fastapi import Header, Query
from tripcore.core.exceptions import AuthError
from tripcore.core.security import resolve_caller
from tripcore.realtime.hub import NotificationHub, hub
from tripcore.services.gateway import MutationGateway, gateway


def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """Resolve the bearer credential of a REST call to a member id."""
    if not authorization or not authorization.startswith("Bearer "):
        raise AuthError("Authorization header missing or invalid")
    return resolve_caller(authorization.split(" ", 1)[1].strip())


def get_stream_user_id(token: Optional[str] = Query(None)) -> str:
    """Resolve the credential of a stream request, which arrives as a query parameter."""
    return resolve_caller(token)


def get_hub() -> NotificationHub:
    return hub


def get_gateway() -> MutationGateway:
    return gateway
