from typing import Optional

from messenger.schemas.base import CamelModel


class UserPublic(CamelModel):

    id: str
    username: str
    photo_url: Optional[str] = None


class OtherUser(UserPublic):

    # transient, comes from the presence registry
    online: bool = False
