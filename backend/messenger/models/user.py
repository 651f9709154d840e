from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: str
    username: str
    photo_url: Optional[str]
