from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

Role = Literal["buyer", "seller", "admin"]


class AuthUser(BaseModel):
    """
    Represents an authenticated marketplace user decoded from a bearer token.
    """

    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="sub")
    email: Optional[EmailStr] = None
    role: Role = "buyer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"
