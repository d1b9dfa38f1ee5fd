from fastapi import Depends, Request
from jose import JWTError
from pydantic import ValidationError

from app.partsflow.core.context import RequestContext, build_request_context
from app.partsflow.core.error_catalog import AppError, ErrorCatalog
from app.partsflow.core.security import TokenData, decode_token, oauth2_scheme
from app.partsflow.services.order_transitions import Role


def get_current_token_data(token: str | None = Depends(oauth2_scheme)) -> TokenData:
    if not token:
        raise AppError(ErrorCatalog.INVALID_TOKEN)
    try:
        payload = decode_token(token)
        return TokenData(**payload)
    except (JWTError, ValidationError, TypeError) as exc:
        raise AppError(ErrorCatalog.INVALID_TOKEN) from exc


def require_request_context(
    request: Request,
    token_data: TokenData = Depends(get_current_token_data),
) -> RequestContext:
    role = Role.parse(token_data.role)
    if role is None:
        raise AppError(ErrorCatalog.PERMISSION_DENIED, details={"message": "unknown role", "role": token_data.role})
    context = build_request_context(
        user_id=token_data.sub,
        store_id=token_data.store_id,
        role=role.value,
        trace_id=getattr(request.state, "trace_id", ""),
    )
    request.state.context = context
    request.state.user_id = context.user_id
    request.state.role = context.role
    request.state.store_id = context.store_id
    return context


def require_role(*roles: Role):
    allowed = {role.value for role in roles}

    def dependency(context: RequestContext = Depends(require_request_context)) -> RequestContext:
        if context.role not in allowed:
            raise AppError(
                ErrorCatalog.PERMISSION_DENIED,
                details={"message": "role not allowed", "role": context.role},
            )
        return context

    return dependency


__all__ = [
    "get_current_token_data",
    "require_request_context",
    "require_role",
]
