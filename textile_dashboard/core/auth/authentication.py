from datetime import timedelta
from typing import Any, Dict, Optional
from jose import jwt
from textile_dashboard.core.setting import config
from textile_dashboard.shared.timezone import get_utc_now

SECRET_KEY = config.SECRET_KEY
ALGORITHM = config.ALGORITHM
ACCESS_TOKEN_EXPIRE_MINUTES = config.ACCESS_TOKEN_EXPIRE_MINUTES


class AuthService:
    """
    Token handling only. Users and logins live in the ERP's auth service;
    this API trusts tokens signed with the shared secret.
    """

    @staticmethod
    def create_access_token(data: dict, expires_minutes: Optional[int] = None) -> str:
        """Generates a JWT token."""
        to_encode = data.copy()
        expire = get_utc_now() + timedelta(minutes=expires_minutes or ACCESS_TOKEN_EXPIRE_MINUTES)
        to_encode.update({"exp": expire})
        return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

    @staticmethod
    def create_user_token(
        user_id: str,
        company_id: Optional[str],
        role: Optional[str] = None,
        username: Optional[str] = None
    ) -> str:
        token_data = {
            "sub": user_id,
            "company_id": company_id,
            "role": role,
            "username": username,
        }
        return AuthService.create_access_token(token_data)

    @staticmethod
    def decode_token(token: str) -> Dict[str, Any]:
        """Raises jose.JWTError for bad signatures or expired tokens."""
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
