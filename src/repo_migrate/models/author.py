"""Author and authoring policy models."""

import re
from enum import Enum
from typing import Iterable, Optional, Tuple

from pydantic import BaseModel, Field, validator

from ..exceptions import ValidationException

_AUTHOR_PATTERN = re.compile(r'^(?P<name>[^<]*)<(?P<email>[^>]*)>$')


class InvalidAuthorException(ValidationException):
    """The string is not of the form 'Name <email>'."""

    pass


class Author(BaseModel):
    """Author of a change.

    Two authors are the same identity when they share the email, the name is
    only used for display.
    """

    name: str = Field(..., description='Author name')
    email: str = Field(default='', description='Author email')

    class Config:
        """Pydantic configuration."""

        frozen = True

    @classmethod
    def parse(cls, author: str) -> 'Author':
        """Parse an author string.

        Args:
            author: String of the form 'Name <email>'

        Returns:
            Parsed author

        Raises:
            InvalidAuthorException: If the string is malformed
        """
        match = _AUTHOR_PATTERN.match(author.strip())
        if not match or not match.group('name').strip():
            raise InvalidAuthorException(
                f"Author '{author}' doesn't match the expected format 'name <mail@example.com>'"
            )
        return cls(name=match.group('name').strip(), email=match.group('email').strip())

    def __str__(self) -> str:
        return f'{self.name} <{self.email}>'

    def __eq__(self, other) -> bool:
        if not isinstance(other, Author):
            return NotImplemented
        return self.email == other.email

    def __hash__(self) -> int:
        return hash(self.email)


class AuthoringMode(str, Enum):
    """How origin authors are mapped to the destination."""

    OVERWRITE = 'overwrite'
    PASS_THRU = 'pass_thru'
    ALLOWLISTED = 'allowlisted'


class Authoring(BaseModel):
    """Authoring policy between an origin and a destination.

    For a given author in the origin it always provides an author for the
    destination: either the origin author or the default one.
    """

    default_author: Author = Field(..., description='Author used when the origin one is not')
    mode: AuthoringMode = Field(..., description='Author mapping mode')
    allowlist: Tuple[str, ...] = Field(
        default_factory=tuple, description='Origin identities allowed to pass through'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True

    @validator('allowlist', always=True)
    def validate_allowlist(cls, v, values):
        """Allow-listed authoring needs a non-empty list without duplicates."""
        if values.get('mode') != AuthoringMode.ALLOWLISTED:
            return v
        if not v:
            raise ValidationException(
                "'allowlisted' authoring requires a non-empty 'allowlist' field. "
                "For default mapping, use 'overwrite' mode instead."
            )
        seen = set()
        for entry in v:
            if entry in seen:
                raise ValidationException(f"Duplicated allowlist entry '{entry}'")
            seen.add(entry)
        return v

    @classmethod
    def overwrite(cls, default: str) -> 'Authoring':
        """Always use the default author."""
        return cls(default_author=Author.parse(default), mode=AuthoringMode.OVERWRITE)

    @classmethod
    def pass_thru(cls, default: str) -> 'Authoring':
        """Use the origin author. The default is used for squash workflows."""
        return cls(default_author=Author.parse(default), mode=AuthoringMode.PASS_THRU)

    @classmethod
    def allowlisted(cls, default: str, allowlist: Iterable[str]) -> 'Authoring':
        """Pass through only the allow-listed origin identities.

        Raises:
            ValidationException: If the list is empty or has duplicates
        """
        return cls(
            default_author=Author.parse(default),
            mode=AuthoringMode.ALLOWLISTED,
            allowlist=tuple(allowlist),
        )

    def use_author(self, user_id: str) -> bool:
        """Return True if the origin identity can be used in the destination."""
        if self.mode == AuthoringMode.PASS_THRU:
            return True
        if self.mode == AuthoringMode.OVERWRITE:
            return False
        return user_id in self.allowlist

    def resolve(self, author: Optional[Author]) -> Author:
        """Map an origin author to the destination author."""
        if author is not None and self.use_author(author.email):
            return author
        return self.default_author
