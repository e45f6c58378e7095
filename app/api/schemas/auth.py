from pydantic import BaseModel, EmailStr

from app.models.user import UserPublic


class SessionRequest(BaseModel):
    email: EmailStr
    password: str


class SessionResponse(BaseModel):
    user: UserPublic
    token: str
