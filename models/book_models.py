from pydantic import BaseModel
from typing import Optional

class BookOwnership(BaseModel):
    """The slice of a book listing the trade engine reads.

    Listings are owned by the books service; ``owner_id`` is the ``user_id``
    field it writes and ``is_taken`` is its availability flag.
    """
    id: str
    owner_id: str
    book_name: Optional[str] = None
    is_taken: bool = False
