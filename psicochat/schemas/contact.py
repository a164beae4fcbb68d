from pydantic import BaseModel

from psicochat.schemas.user import Role


class Contact(BaseModel):
    """Someone the current user may start a conversation with. Not persisted."""
    id: str
    display_name: str
    email: str = ""
    role: Role
