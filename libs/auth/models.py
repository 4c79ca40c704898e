from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class AuthUser(BaseModel):
    """
    Represents an authenticated user from a Supabase access token.
    """

    user_id: str = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: str = "authenticated"
    # Raw bearer token, kept so the session can be revoked on block
    token: Optional[str] = Field(default=None, exclude=True)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def normalized_email(self) -> str:
        return (self.email or "").strip().lower()
