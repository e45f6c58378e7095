from sqlmodel import Field, SQLModel


class UserBase(SQLModel):
    name: str
    email: str = Field(unique=True, index=True)
    provider: bool = False
    locale: str | None = None


class User(UserBase, table=True):
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    hashed_password: str | None = None
    avatar_id: int | None = Field(default=None, foreign_key="files.id")


class UserPublic(SQLModel):
    id: int
    name: str
    email: str
    provider: bool
