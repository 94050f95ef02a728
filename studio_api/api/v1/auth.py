import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from studio_api.auth.dependencies import get_current_user
from studio_api.auth.jwt import REFRESH_TOKEN, auth_service
from studio_api.database import get_session
from studio_api.models.user import User
from studio_api.schemas.auth import LoginRequest, LoginResponse, RefreshRequest, UserResponse

router = APIRouter()
logger = logging.getLogger(__name__)


def _login_response(user: User) -> LoginResponse:
	access_token, refresh_token = auth_service.issue_tokens(user)
	return LoginResponse(
		access_token=access_token,
		refresh_token=refresh_token,
		user=UserResponse.model_validate(user)
	)


@router.post("/login", response_model=LoginResponse)
async def login(
		request: LoginRequest,
		session: AsyncSession = Depends(get_session)
):
	"""Exchange studio credentials for a token pair"""
	result = await session.execute(select(User).where(User.username == request.username))
	user = result.scalar_one_or_none()

	if not user or not auth_service.verify_password(request.password, user.hashed_password):
		logger.warning(f"Failed login for {request.username}")
		raise HTTPException(
			status_code=status.HTTP_401_UNAUTHORIZED,
			detail="Incorrect username or password",
			headers={"WWW-Authenticate": "Bearer"}
		)
	if not user.is_active:
		raise HTTPException(
			status_code=status.HTTP_403_FORBIDDEN,
			detail="Inactive user"
		)

	logger.info(f"User logged in: {user.username}")
	return _login_response(user)


@router.post("/refresh", response_model=LoginResponse)
async def refresh_token(
		request: RefreshRequest,
		session: AsyncSession = Depends(get_session)
):
	payload = auth_service.decode_token(request.refresh_token, expected_type=REFRESH_TOKEN)
	if not payload:
		raise HTTPException(
			status_code=status.HTTP_401_UNAUTHORIZED,
			detail="Invalid refresh token"
		)

	try:
		user_id = uuid.UUID(str(payload.get("sub")))
	except ValueError:
		raise HTTPException(
			status_code=status.HTTP_401_UNAUTHORIZED,
			detail="Invalid refresh token"
		)

	result = await session.execute(select(User).where(User.id == user_id))
	user = result.scalar_one_or_none()
	if not user or not user.is_active:
		raise HTTPException(
			status_code=status.HTTP_401_UNAUTHORIZED,
			detail="User not found or inactive"
		)
	return _login_response(user)


@router.get("/me", response_model=UserResponse)
async def get_current_user_info(current_user: User = Depends(get_current_user)):
	return current_user
