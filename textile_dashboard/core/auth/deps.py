from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from textile_dashboard.core.schemas.auth import CurrentUser
from textile_dashboard.core.auth.authentication import AuthService

# This tells FastAPI where to get the token (Authorization header)
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login")

async def get_current_user(token: str = Depends(oauth2_scheme)) -> CurrentUser:
    """
    Dependency that decodes the JWT token into the caller's identity.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = AuthService.decode_token(token)
    except JWTError:
        raise credentials_exception

    user_id = payload.get("sub")
    if user_id is None:
        raise credentials_exception

    return CurrentUser(
        user_id=str(user_id),
        company_id=payload.get("company_id"),
        role=payload.get("role"),
        username=payload.get("username"),
    )

async def get_company_user(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Same as get_current_user, but the session must be scoped to a company.
    """
    if not current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Company context required. User must be associated with a company",
        )
    return current_user
