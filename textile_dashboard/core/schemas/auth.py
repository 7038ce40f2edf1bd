from typing import Optional
from pydantic import BaseModel, Field

# --- Internal Schema for Dependency ---
# This is what get_current_user returns to your routes
class CurrentUser(BaseModel):

    user_id: str = Field(..., description="Subject of the access token.")
    company_id: Optional[str] = Field(None, description="Tenant the session is scoped to.")
    role: Optional[str] = None
    username: Optional[str] = None
