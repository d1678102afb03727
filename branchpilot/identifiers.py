"""Validation of user supplied branch names and free-text suffixes."""
from __future__ import annotations

import re

from .errors import InvalidIdentifierError

_ALLOWED = re.compile(r"^[A-Za-z0-9._/-]+$")
_MAX_LENGTH = 200


def slugify(text: str) -> str:
    """Collapse whitespace to hyphens and lowercase: ``"Login page"`` -> ``"login-page"``.

    Characters git would reject are left in place so that ``BranchName.parse``
    reports them instead of silently rewriting the name.
    """
    return re.sub(r"\s+", "-", text.strip()).lower()


class BranchName(str):
    """A ref name that is safe to hand to git as a single argv entry."""

    __slots__ = ()

    @classmethod
    def parse(cls, value: str) -> "BranchName":
        if isinstance(value, BranchName):
            return value
        if not value:
            raise InvalidIdentifierError(value, "empty name")
        if len(value) > _MAX_LENGTH:
            raise InvalidIdentifierError(value, f"longer than {_MAX_LENGTH} characters")
        if not _ALLOWED.match(value):
            raise InvalidIdentifierError(value, "only letters, digits, '.', '_', '-' and '/' are allowed")
        if value.startswith("-"):
            raise InvalidIdentifierError(value, "must not start with '-'")
        if ".." in value or "//" in value:
            raise InvalidIdentifierError(value, "contains a forbidden sequence")
        if value.endswith(("/", ".", ".lock")):
            raise InvalidIdentifierError(value, "has a forbidden suffix")
        if any(part.startswith(".") for part in value.split("/")):
            raise InvalidIdentifierError(value, "path components must not start with '.'")
        return cls(value)

    @classmethod
    def from_text(cls, text: str) -> "BranchName":
        """Slugify free text first, then validate the result."""
        return cls.parse(slugify(text))


__all__ = ["BranchName", "slugify"]
