"""Tests for the git origin and destination against local repositories."""

import pytest

from repo_migrate.config.config import GitConfig, WorkflowOptions
from repo_migrate.exceptions import (
    CannotResolveRevisionException,
    EmptyChangeException,
    RepoException,
)
from repo_migrate.git import GIT_ORIGIN_REV_ID, GitDestination, GitOrigin, GitRepository
from repo_migrate.git.repository import git_available
from repo_migrate.migration.workflow import Workflow, WorkflowMode
from repo_migrate.models import Authoring
from repo_migrate.models.change import EmptyReason
from repo_migrate.testing import TestingConsole
from repo_migrate.transform import Sequence
from repo_migrate.utils.glob import Glob

pytestmark = pytest.mark.skipif(not git_available(), reason='git is not installed')

ORIGIN_AUTHOR = 'Origin <origin@example.com>'


def new_repo(tmp_path):
    repo = GitRepository.init_scratch(temp_dir=str(tmp_path))
    repo.git('symbolic-ref', 'HEAD', 'refs/heads/master')
    repo.config('user.name', 'Test')
    repo.config('user.email', 'test@example.com')
    return repo


def commit(repo, files, message, timestamp=1000, author=ORIGIN_AUTHOR):
    """Write ``files`` into the work tree and commit them."""
    for relative, content in files.items():
        path = repo.work_tree / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    repo.add_all()
    repo.commit(author, timestamp, message)
    return repo.resolve('HEAD')


class GitTestBase:
    """Origin work repository and bare destination shared by git tests."""

    def setup_repos(self, tmp_path):
        self.config = GitConfig(repo_storage=str(tmp_path / 'cache'))
        self.origin_repo = new_repo(tmp_path)
        self.destination_path = tmp_path / 'destination.git'
        self.destination_repo = GitRepository.init_bare(self.destination_path)
        self.console = TestingConsole()

    def seed_destination(self, tmp_path):
        seed = new_repo(tmp_path)
        commit(seed, {'README': 'readme'}, 'Initial\n', author='Seed <seed@example.com>')
        seed.push(str(self.destination_path), 'HEAD:refs/heads/master')

    def origin(self):
        return GitOrigin(str(self.origin_repo.work_tree), 'master', self.config)

    def destination(self, config=None):
        return GitDestination(str(self.destination_path), 'master', config=config or self.config)

    def workflow(self, mode, destination=None, **options):
        return Workflow(
            name='default',
            origin=self.origin(),
            destination=destination or self.destination(),
            authoring=Authoring.pass_thru('Default <default@example.com>'),
            transformation=Sequence([]),
            mode=mode,
            origin_files=Glob(['src/**']),
            destination_files=Glob(['src/**']),
            options=WorkflowOptions(**options),
        )

    def show(self, path, ref='master'):
        return self.destination_repo.git('show', f'{ref}:{path}').stdout


class TestGitOrigin(GitTestBase):
    """Test GitOrigin and GitReader."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        """Set up test fixtures."""
        self.setup_repos(tmp_path)
        self.first = commit(self.origin_repo, {'src/a.txt': 'a'}, 'First\n', 1000)
        self.docs = commit(self.origin_repo, {'docs/d.md': 'd'}, 'Docs\n', 1001)
        self.second = commit(self.origin_repo, {'src/a.txt': 'b'}, 'Second\n', 1002)

    def test_resolve(self):
        """Test resolving branches and shas."""
        origin = self.origin()

        revision = origin.resolve(None)
        assert revision.id == self.second
        assert revision.context_reference == 'master'
        assert revision.read_timestamp() == 1002

        assert origin.resolve(self.first).id == self.first

    def test_resolve_unknown(self):
        """Test that unknown references cannot be resolved."""
        with pytest.raises(CannotResolveRevisionException, match='Cannot find reference'):
            self.origin().resolve('does-not-exist')

    def test_changes_filtered_by_origin_files(self):
        """Test that commits not touching the origin files are ignored."""
        origin = self.origin()
        reader = origin.new_reader(Glob(['src/**']), Authoring.pass_thru(ORIGIN_AUTHOR))

        response = reader.changes(None, origin.resolve('master'))

        assert [c.ref for c in response.changes] == [self.first, self.second]
        assert [c.message for c in response.changes] == ['First\n', 'Second\n']
        assert response.changes[0].author.email == 'origin@example.com'

    def test_changes_between_revisions(self):
        """Test ancestry checks between revisions."""
        origin = self.origin()
        reader = origin.new_reader(Glob(['src/**']), Authoring.pass_thru(ORIGIN_AUTHOR))
        first = origin.resolve(self.first)
        second = origin.resolve(self.second)

        assert [c.ref for c in reader.changes(first, second).changes] == [self.second]
        assert reader.changes(second, first).empty_reason == EmptyReason.TO_IS_ANCESTOR
        assert reader.changes(first, origin.resolve(self.docs)).empty_reason == (
            EmptyReason.NO_CHANGES
        )

    def test_change_not_selected(self):
        """Test that a single commit outside the origin files is empty."""
        origin = self.origin()
        reader = origin.new_reader(Glob(['src/**']), Authoring.pass_thru(ORIGIN_AUTHOR))

        with pytest.raises(EmptyChangeException):
            reader.change(origin.resolve(self.docs))

    def test_checkout(self, tmp_path):
        """Test that only origin files are checked out."""
        origin = self.origin()
        reader = origin.new_reader(Glob(['src/**']), Authoring.pass_thru(ORIGIN_AUTHOR))
        workdir = tmp_path / 'checkout'

        reader.checkout(origin.resolve(self.second), workdir)

        assert (workdir / 'src' / 'a.txt').read_text() == 'b'
        assert not (workdir / 'docs').exists()


class TestGitDestination(GitTestBase):
    """Test GitDestination through workflows."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path):
        """Set up test fixtures."""
        self.setup_repos(tmp_path)
        self.tmp_path = tmp_path
        self.first = commit(self.origin_repo, {'src/a.txt': 'a'}, 'First\n', 1000)
        self.second = commit(self.origin_repo, {'src/a.txt': 'b'}, 'Second\n', 1001)

    def test_iterative_migration(self):
        """Test that every origin commit becomes a destination commit with its label."""
        self.seed_destination(self.tmp_path)

        self.workflow(WorkflowMode.ITERATIVE).run(self.tmp_path / 'workdir', None, self.console)

        entries = self.destination_repo.log('master')
        assert len(entries) == 3
        assert entries[0].body.startswith('Second\n')
        assert f'{GIT_ORIGIN_REV_ID}: {self.second}' in entries[0].body
        assert f'{GIT_ORIGIN_REV_ID}: {self.first}' in entries[1].body
        assert entries[0].author_email == 'origin@example.com'
        assert [int(e.timestamp.timestamp()) for e in entries[:2]] == [1001, 1000]
        assert self.show('src/a.txt') == 'b'
        assert self.show('README') == 'readme'
        assert self.destination().get_previous_ref(GIT_ORIGIN_REV_ID) == self.second

    def test_nothing_new_to_migrate(self):
        """Test that a second run without new commits fails as empty."""
        self.seed_destination(self.tmp_path)
        workflow = self.workflow(WorkflowMode.ITERATIVE)
        workflow.run(self.tmp_path / 'workdir', None, self.console)

        with pytest.raises(EmptyChangeException):
            workflow.run(self.tmp_path / 'workdir', None, self.console)

    def test_squash_migration(self):
        """Test that squash migrates the latest tree in one commit."""
        self.seed_destination(self.tmp_path)

        self.workflow(WorkflowMode.SQUASH).run(self.tmp_path / 'workdir', None, self.console)

        entries = self.destination_repo.log('master')
        assert len(entries) == 2
        assert f'{GIT_ORIGIN_REV_ID}: {self.second}' in entries[0].body
        assert entries[0].author_email == 'default@example.com'

    def test_dry_run(self):
        """Test that dry runs do not push."""
        self.seed_destination(self.tmp_path)
        before = self.destination_repo.resolve('master')

        self.workflow(WorkflowMode.SQUASH, dry_run=True).run(
            self.tmp_path / 'workdir', None, self.console
        )

        assert self.destination_repo.resolve('master') == before

    def test_missing_branch(self):
        """Test that a missing destination branch needs the first commit flag."""
        with pytest.raises(RepoException, match='--git-first-commit'):
            self.workflow(WorkflowMode.SQUASH).run(self.tmp_path / 'workdir', None, self.console)

    def test_first_commit(self):
        """Test pushing to an empty repository."""
        config = GitConfig(repo_storage=str(self.tmp_path / 'cache'), first_commit=True)
        workflow = self.workflow(WorkflowMode.SQUASH, destination=self.destination(config))

        workflow.run(self.tmp_path / 'workdir', None, self.console)

        assert self.show('src/a.txt') == 'b'

    def test_first_commit_on_existing_branch(self):
        """Test that the first commit flag fails when the branch exists."""
        self.seed_destination(self.tmp_path)
        config = GitConfig(repo_storage=str(self.tmp_path / 'cache'), first_commit=True)
        destination = self.destination(config)

        with pytest.raises(RepoException, match='already exists'):
            destination.clone_baseline()

    def test_previous_ref_fails_on_merge_commit(self):
        """Test that a merge above the last labeled commit stops the lookup."""
        self.seed_destination(self.tmp_path)
        self.workflow(WorkflowMode.ITERATIVE).run(self.tmp_path / 'workdir', None, self.console)
        work = new_repo(self.tmp_path)
        work.git('fetch', '-q', str(self.destination_path), 'master')
        work.git('checkout', '-q', '-B', 'master', 'FETCH_HEAD')
        work.git('checkout', '-q', '-b', 'side')
        commit(work, {'side.txt': 'side'}, 'Side\n', 2000)
        work.git('checkout', '-q', 'master')
        commit(work, {'main.txt': 'main'}, 'Main\n', 2001)
        work.git('merge', '-q', '--no-ff', '--no-edit', '-m', 'Merge side', 'side')
        work.push(str(self.destination_path), 'HEAD:refs/heads/master')

        with pytest.raises(RepoException, match='merge commit'):
            self.destination().get_previous_ref(GIT_ORIGIN_REV_ID)
