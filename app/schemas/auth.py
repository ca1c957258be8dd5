from pydantic import BaseModel


class AuthorizedUser(BaseModel):
    """Acting user resolved from the bearer token."""
    id: str
    tenant_id: str


class TokenPayload(BaseModel):
    sub: str
    tenant_id: str
    exp: int
    iat: int
