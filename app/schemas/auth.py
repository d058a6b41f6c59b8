from pydantic import BaseModel


class LoginRequest(BaseModel):
    email: str
    password: str


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeRead(BaseModel):
    id: int
    email: str
    username: str
    country: str | None
    role: str
    socials: dict[str, str | None]
