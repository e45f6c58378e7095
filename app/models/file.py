from sqlmodel import Field, SQLModel


class File(SQLModel, table=True):
    """Uploaded file metadata; only avatars are referenced here."""

    __tablename__ = "files"
    id: int | None = Field(default=None, primary_key=True)
    name: str
    path: str = Field(unique=True)


class AvatarPublic(SQLModel):
    url: str
    id: int
    path: str
