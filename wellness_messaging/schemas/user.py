from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Profile(BaseModel):
    """Display profile from the user directory; unknown fields are passed through."""

    model_config = ConfigDict(extra="allow")

    id: int
    display_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("displayName", "display_name"))


class TokenPayload(BaseModel):

    user_id: int = Field(validation_alias=AliasChoices("userId", "user_id"))
    sub: Optional[str] = None
    exp: int


class CurrentUser(BaseModel):

    user_id: int
    username: Optional[str] = None
