import logging
from datetime import timedelta, datetime, timezone
from typing import Dict, Any, Optional, Tuple
from jose import JWTError, jwt

from passlib.context import CryptContext

from studio_api.config import settings
from studio_api.models.user import User

logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

ACCESS_TOKEN = "access"
REFRESH_TOKEN = "refresh"


class AuthService:
	@staticmethod
	def verify_password(plain_password: str, hashed_password: str) -> bool:
		return pwd_context.verify(plain_password, hashed_password)

	@staticmethod
	def hash_password(password: str) -> str:
		return pwd_context.hash(password)

	@staticmethod
	def _encode(claims: Dict[str, Any], token_type: str, lifetime: timedelta) -> str:
		payload = dict(claims)
		payload.update({
			"exp": datetime.now(timezone.utc) + lifetime,
			"type": token_type,
		})
		return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)

	def create_access_token(self, user: User, expires_delta: Optional[timedelta] = None) -> str:
		"""Access tokens carry the role so clients can adapt their UI"""
		role = user.role.value if hasattr(user.role, "value") else user.role
		return self._encode(
			{"sub": str(user.id), "role": role},
			ACCESS_TOKEN,
			expires_delta or timedelta(hours=settings.JWT_EXPIRATION_HOURS),
		)

	def create_refresh_token(self, user: User) -> str:
		return self._encode(
			{"sub": str(user.id)},
			REFRESH_TOKEN,
			timedelta(days=settings.JWT_REFRESH_EXPIRATION_DAYS),
		)

	def issue_tokens(self, user: User) -> Tuple[str, str]:
		return self.create_access_token(user), self.create_refresh_token(user)

	@staticmethod
	def decode_token(token: str, expected_type: str = ACCESS_TOKEN) -> Optional[Dict[str, Any]]:
		"""Decode a token, returning None when it is invalid, expired or of the wrong type"""
		try:
			payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
		except JWTError as e:
			logger.warning(f"JWT decode error: {e}")
			return None

		if payload.get("type") != expected_type:
			logger.warning(f"Rejected {payload.get('type')} token where {expected_type} was expected")
			return None
		return payload


auth_service = AuthService()
