"""Transformations of the change metadata."""

from typing import Dict, Mapping

from ..exceptions import NonReversibleValidationException, ValidationException
from ..migration.transform_work import TransformWork
from ..models.author import Author, InvalidAuthorException
from .base import Transformation


class MapAuthor(Transformation):
    """Map authors between repositories.

    Lookups are done, in order, by the whole author string, by email and by
    name. The first hit wins.
    """

    def __init__(
        self,
        author_to_author: Mapping[str, str],
        mail_to_author: Mapping[str, Author],
        name_to_author: Mapping[str, Author],
        reversible: bool = False,
        fail_if_not_found: bool = False,
        fail_if_not_found_in_reverse: bool = False,
    ):
        self.author_to_author: Dict[str, str] = dict(author_to_author)
        self.mail_to_author: Dict[str, Author] = dict(mail_to_author)
        self.name_to_author: Dict[str, Author] = dict(name_to_author)
        self.reversible = reversible
        self.fail_if_not_found = fail_if_not_found
        self.fail_if_not_found_in_reverse = fail_if_not_found_in_reverse

    @classmethod
    def create(
        cls,
        author_map: Mapping[str, str],
        reversible: bool = False,
        fail_if_not_found: bool = False,
        fail_if_not_found_in_reverse: bool = False,
    ) -> 'MapAuthor':
        """Build the lookup tiers from a single mapping.

        Keys of the form 'Name <email>' go to the author tier, other keys
        containing '@' are emails and the rest are names. Values must always
        be valid authors.

        Args:
            author_map: Mapping from origin identity to destination author
            reversible: Allow reversing the mapping
            fail_if_not_found: Fail when an author has no mapping
            fail_if_not_found_in_reverse: Same, for the reversed mapping

        Raises:
            InvalidAuthorException: If a value is not a valid author
        """
        author_to_author = {}
        mail_to_author = {}
        name_to_author = {}
        for key, value in author_map.items():
            to = Author.parse(value)
            try:
                author_to_author[str(Author.parse(key))] = str(to)
            except InvalidAuthorException:
                if '@' in key:
                    mail_to_author[key] = to
                else:
                    name_to_author[key] = to
        return cls(
            author_to_author,
            mail_to_author,
            name_to_author,
            reversible=reversible,
            fail_if_not_found=fail_if_not_found,
            fail_if_not_found_in_reverse=fail_if_not_found_in_reverse,
        )

    def transform(self, work: TransformWork) -> TransformWork:
        author = work.author
        new_author = self.author_to_author.get(str(author))
        if new_author is not None:
            return work.with_author(Author.parse(new_author))
        by_mail = self.mail_to_author.get(author.email)
        if by_mail is not None:
            return work.with_author(by_mail)
        by_name = self.name_to_author.get(author.name)
        if by_name is not None:
            return work.with_author(by_name)
        ValidationException.check(
            not self.fail_if_not_found, "Cannot find a mapping for author '%s'", author
        )
        return work

    def reverse(self) -> 'MapAuthor':
        if not self.reversible:
            raise NonReversibleValidationException(
                "Author mapping doesn't have reversible enabled"
            )
        if self.mail_to_author:
            raise NonReversibleValidationException(
                'author mapping is not reversible because it contains mail -> author mappings.'
                f' Only author -> author is reversible: {self.mail_to_author}'
            )
        if self.name_to_author:
            raise NonReversibleValidationException(
                'author mapping is not reversible because it contains name -> author mappings.'
                f' Only author -> author is reversible: {self.name_to_author}'
            )

        reverse: Dict[str, str] = {}
        for key, value in self.author_to_author.items():
            if value in reverse:
                raise NonReversibleValidationException(
                    f'non-reversible author map: value already present: {value}'
                    f' (mapped from {reverse[value]} and {key})'
                )
            reverse[value] = key
        return MapAuthor(
            reverse,
            {},
            {},
            reversible=self.reversible,
            fail_if_not_found=self.fail_if_not_found_in_reverse,
            fail_if_not_found_in_reverse=self.fail_if_not_found,
        )

    def describe(self) -> str:
        return 'Mapping authors'

    def __repr__(self) -> str:
        return (
            f'MapAuthor(author_to_author={self.author_to_author}, '
            f'mail_to_author={self.mail_to_author}, name_to_author={self.name_to_author}, '
            f'reversible={self.reversible}, fail_if_not_found={self.fail_if_not_found}, '
            f'fail_if_not_found_in_reverse={self.fail_if_not_found_in_reverse})'
        )
