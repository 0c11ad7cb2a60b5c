from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .storage import StoredProfile


class PasswordLoginForm(BaseModel):
    username: str = Field(..., min_length=5, max_length=64)
    password: str = Field(..., min_length=6, max_length=64)


class ProfileResponse(BaseModel):
    id: str
    provider: str
    identifier: str
    name: Optional[str] = None
    nickname: Optional[str] = None
    email: Optional[str] = None
    image_url: Optional[str] = None
    urls: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_profile(cls, profile: StoredProfile) -> "ProfileResponse":
        # Only the normalized attributes; never the password hash or provider tokens
        attributes = (profile.provider_data or {}).get("profile") or {}
        return cls(
            id=profile.id,
            provider=profile.provider,
            identifier=profile.identifier,
            name=attributes.get("name"),
            nickname=attributes.get("nickname"),
            email=attributes.get("email"),
            image_url=attributes.get("image_url"),
            urls=attributes.get("urls") or {},
        )


class LoginStatusResponse(BaseModel):
    logged_in: bool
    profile: Optional[ProfileResponse] = None


class PasswordFormResponse(BaseModel):
    provider: str
    form: Dict[str, Any]


class ProviderInfo(BaseModel):
    name: str
    type: str
    login_url: str


class ProviderList(BaseModel):
    providers: List[ProviderInfo]
