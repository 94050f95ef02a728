import uuid
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_api.auth.jwt import auth_service
from studio_api.database import get_session
from studio_api.models.user import User

# Missing credentials must surface as 401, not HTTPBearer's default 403
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
	return HTTPException(
		status_code=status.HTTP_401_UNAUTHORIZED,
		detail=detail,
		headers={"WWW-Authenticate": "Bearer"}
	)


async def get_current_user(
		credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
		session: AsyncSession = Depends(get_session)
) -> User:
	"""Resolve the bearer token to an active user"""
	if credentials is None:
		raise _unauthorized("Not authenticated")

	payload = auth_service.decode_token(credentials.credentials)
	if not payload:
		raise _unauthorized("Invalid authentication credentials")

	try:
		user_id = uuid.UUID(str(payload.get("sub")))
	except ValueError:
		raise _unauthorized("Invalid token payload")

	result = await session.execute(select(User).where(User.id == user_id))
	user = result.scalar_one_or_none()

	if not user or not user.is_active:
		raise _unauthorized("User not found or inactive")
	return user


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
	"""Require admin role"""
	if not current_user.is_admin:
		raise HTTPException(
			status_code=status.HTTP_403_FORBIDDEN,
			detail="Admin access required"
		)
	return current_user
