"""Gerrit destination: pushes migrated changes for review."""

import hashlib
from typing import Optional

from loguru import logger

from ..config.config import GerritConfig, GitConfig
from ..exceptions import RedundantChangeException, RepoException
from ..git.destination import GitDestination
from ..git.repository import GIT_ORIGIN_REV_ID, GitRepository
from ..migration.destination import Destination, Writer
from ..migration.transform_result import TransformResult
from ..models.message import ChangeMessage, LabelLine
from ..utils.glob import Glob
from .client import GerritClient

CHANGE_ID_LABEL = 'Change-Id'
MAX_FIND_ATTEMPTS = 150


class GerritDestination(Destination):
    """Git destination that pushes to ``refs/for/<branch>`` with a Change-Id.

    The Change-Id is, in order of preference, the configured one or one
    derived from the origin revision and the committer email. Derived ids
    skip changes that are already merged or abandoned so that the same
    origin revision can be reviewed again.
    """

    def __init__(
        self,
        url: str,
        fetch: str,
        push_to_refs_for: Optional[str] = None,
        git_config: Optional[GitConfig] = None,
        gerrit_config: Optional[GerritConfig] = None,
        client: Optional[GerritClient] = None,
    ):
        self.url = url
        self.fetch = fetch
        self.push_to_refs_for = push_to_refs_for or fetch
        self.git_config = git_config or GitConfig()
        self.gerrit_config = gerrit_config or GerritConfig()
        self._client = client
        self.logger = logger.bind(component='GerritDestination')
        self.git_destination = GitDestination(
            url,
            fetch,
            push=f'refs/for/{self.push_to_refs_for}',
            config=self.git_config,
            commit_generator=self.commit_message,
        )

    @property
    def client(self) -> GerritClient:
        if self._client is None:
            self._client = GerritClient(self.url, self.gerrit_config)
        return self._client

    @property
    def label_name_when_origin(self) -> Optional[str]:
        return GIT_ORIGIN_REV_ID

    @property
    def destination_type(self) -> str:
        return 'gerrit.destination'

    def describe(self, destination_files: Glob):
        description = super().describe(destination_files)
        description['url'] = [self.url]
        description['fetch'] = [self.fetch]
        description['push'] = [f'refs/for/{self.push_to_refs_for}']
        return description

    def new_writer(
        self,
        destination_files: Glob,
        dry_run: bool = False,
        old_writer: Optional[Writer] = None,
    ) -> Writer:
        return self.git_destination.new_writer(destination_files, dry_run, old_writer)

    def get_previous_ref(self, label_name: str) -> Optional[str]:
        return self.git_destination.get_previous_ref(label_name)

    def commit_message(self, transform_result: TransformResult, repo: GitRepository) -> str:
        """Commit message with the origin label and the Change-Id footer.

        Raises:
            RedundantChangeException: If an open change already migrates the
                same origin revision
        """
        change_id = self.change_id_for(transform_result)
        message = ChangeMessage.parse_message(transform_result.summary)
        message = message.with_new_or_replaced_label(
            transform_result.origin_label, ': ', transform_result.origin_ref.as_string()
        )
        message = message.with_new_or_replaced_label(CHANGE_ID_LABEL, ': ', change_id)
        return str(message)

    def change_id_for(self, transform_result: TransformResult) -> str:
        if self.gerrit_config.change_id:
            return self.gerrit_config.change_id

        origin_ref = transform_result.origin_ref.as_string()
        committer = self.git_config.committer_email
        for attempt in range(MAX_FIND_ATTEMPTS):
            change_id = compute_change_id(origin_ref, committer, attempt)
            change = self.client.find_change(change_id, include_commit=True)
            if change is None:
                self.logger.info(f'Using new Change-Id {change_id} for {origin_ref}')
                return change_id
            if change.is_open:
                self._check_not_redundant(
                    change_id, change.current_commit_message(), transform_result
                )
                self.logger.info(f'Updating open change {change_id} for {origin_ref}')
                return change_id
            self.logger.debug(f'Change {change_id} is {change.status}, trying the next one')
        raise RepoException(
            f"Unable to find an unmerged change for '{origin_ref}', committer '{committer}'."
        )

    def _check_not_redundant(
        self, change_id: str, pending_message: Optional[str], transform_result: TransformResult
    ) -> None:
        if pending_message is None or self.git_config.allow_empty_diff:
            return
        origin_ref = transform_result.origin_ref.as_string()
        for line in pending_message.split('\n'):
            label = LabelLine(line)
            if label.is_label(transform_result.origin_label) and label.value.strip() == origin_ref:
                raise RedundantChangeException(
                    f"Change {change_id} is already pending for origin revision '{origin_ref}'",
                    pending_change_id=change_id,
                )

    def __repr__(self) -> str:
        return f'GerritDestination(url={self.url!r}, push=refs/for/{self.push_to_refs_for})'


def compute_change_id(origin_ref: str, committer_email: str, attempt: int) -> str:
    """Deterministic Change-Id for an origin revision."""
    digest = hashlib.sha1()
    digest.update(origin_ref.encode('utf-8'))
    digest.update(committer_email.encode('utf-8'))
    digest.update(attempt.to_bytes(4, 'little'))
    return 'I' + digest.hexdigest()
