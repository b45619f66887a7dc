"""
Slug generation and collision-free slug allocation.
"""
import re
import unicodedata
from typing import Optional, Set

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from catalog_engine.core.errors import ValidationFailedError

_NON_SLUG_CHARS = re.compile(r"[^a-z0-9]+")

# Characters NFKD does not decompose to ASCII
_TRANSLITERATIONS = str.maketrans({
    "ı": "i",
    "İ": "I",
    "ß": "ss",
    "æ": "ae",
    "Æ": "AE",
    "ø": "o",
    "Ø": "O",
    "đ": "d",
    "Đ": "D",
    "ł": "l",
    "Ł": "L",
})


def generate_slug(text: str) -> str:
    """
    Turn free text into a URL slug.

    "Aurora Lamp" -> "aurora-lamp", "Işık & Gölge" -> "isik-golge".

    Raises:
        ValidationFailedError: if nothing slug-worthy is left
    """
    value = (text or "").translate(_TRANSLITERATIONS)
    value = unicodedata.normalize("NFKD", value)
    value = value.encode("ascii", "ignore").decode("ascii").lower()
    slug = _NON_SLUG_CHARS.sub("-", value).strip("-")
    if not slug:
        raise ValidationFailedError(
            "Unable to generate slug.",
            issues=[{"path": "slug", "message": "A valid slug could not be generated."}],
        )
    return slug


class SlugAllocator:
    """
    Allocates slugs that are unique within one model's ``slug`` column.

    Candidates are tried in order: ``slug``, ``slug-1``, ``slug-2``... The first
    one that is free (or taken only by ``ignore_id``) wins. Two concurrent
    allocations may pick the same candidate; the unique constraint rejects the
    second at commit, which the transaction layer reports as ConflictError.
    """

    def __init__(self, model):
        self.model = model

    def _taken(self, session: Session, base: str, ignore_id: Optional[str]) -> Set[str]:
        escaped = base.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        stmt = select(self.model.slug).where(
            or_(self.model.slug == base, self.model.slug.like(f"{escaped}-%", escape="\\"))
        )
        if ignore_id is not None:
            stmt = stmt.where(self.model.id != ignore_id)
        return set(session.scalars(stmt))

    def allocate(self, session: Session, candidate: str, ignore_id: Optional[str] = None) -> str:
        base = generate_slug(candidate)
        taken = self._taken(session, base, ignore_id)
        slug = base
        suffix = 0
        while slug in taken:
            suffix += 1
            slug = f"{base}-{suffix}"
        return slug
