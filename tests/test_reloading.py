"""Tests for workflows that reload their configuration for every change."""

import pytest

from repo_migrate.config.config import Config, WorkflowOptions
from repo_migrate.config.loader import ConfigLoader, MigrationConfig, OriginConfigLoader
from repo_migrate.config.validator import ConfigValidator
from repo_migrate.exceptions import ValidationException
from repo_migrate.folder import FolderDestination, FolderOrigin
from repo_migrate.migration.reloading import ReloadingWorkflow
from repo_migrate.migration.workflow import Workflow, WorkflowMode
from repo_migrate.models import Authoring
from repo_migrate.testing import DummyOrigin, RecordsProcessCallDestination, TestingConsole
from repo_migrate.transform import Sequence
from repo_migrate.transform.base import Transformation


class AddConfigLabel(Transformation):
    """Labels the message with the configuration version that was used."""

    def __init__(self, version):
        self.version = version

    def transform(self, work):
        return work.add_label('Config-Version', self.version)

    def reverse(self):
        return self


class RevisionConfigLoader(ConfigLoader):
    """Returns a prepared configuration per origin revision."""

    def __init__(self, configs):
        super().__init__()
        self.configs = configs
        self.loaded = []

    def location(self):
        return 'in-memory'

    def load(self, console):
        return self.configs['current']

    def load_for_revision(self, console, revision):
        self.loaded.append(revision.as_string())
        return self.configs[revision.as_string()]


class TestReloadingWorkflow:
    """Test ReloadingWorkflow and its run helper."""

    def setup_method(self):
        """Set up test fixtures."""
        self.origin = DummyOrigin()
        for timestamp in (1000, 1001, 1002):
            self.origin.add_simple_change(timestamp)
        self.destination = RecordsProcessCallDestination()
        self.console = TestingConsole()

    def workflow(self, version, name='default', **options):
        return Workflow(
            name=name,
            origin=self.origin,
            destination=self.destination,
            authoring=Authoring.pass_thru('Default <default@example.com>'),
            transformation=Sequence([AddConfigLabel(version)]),
            mode=WorkflowMode.ITERATIVE,
            options=WorkflowOptions(**options),
        )

    def config(self, migrations, location='config'):
        return MigrationConfig(location=location, migrations=migrations)

    def test_uses_configuration_of_each_change(self, tmp_path):
        """Test that every change is migrated with its own configuration."""
        loader = RevisionConfigLoader(
            {
                '0': self.config({'default': self.workflow('v0')}),
                '1': self.config({'default': self.workflow('v1')}),
                '2': self.config({'default': self.workflow('v2')}),
            }
        )
        workflow = ReloadingWorkflow.wrap(self.workflow('current'), loader)

        summary = workflow.run(tmp_path / 'workdir', None, self.console)

        assert loader.loaded == ['0', '1', '2']
        assert [p.summary for p in self.destination.processed] == [
            'Change 0\n\nConfig-Version=v0\n',
            'Change 1\n\nConfig-Version=v1\n',
            'Change 2\n\nConfig-Version=v2\n',
        ]
        assert summary.migrated == ['0', '1', '2']

    def test_writer_state_is_carried(self, tmp_path):
        """Test that the writer of a change is passed to the next one."""
        loader = RevisionConfigLoader(
            {ref: self.config({'default': self.workflow(ref)}) for ref in ('0', '1', '2')}
        )

        ReloadingWorkflow.wrap(self.workflow('current'), loader).run(
            tmp_path / 'workdir', None, self.console
        )

        states = {id(writer.state) for writer in self.destination.writers}
        assert len(states) == 1
        assert self.destination.writers[-1].state.writes == ['0', '1', '2']

    def test_dry_run_does_not_carry_writer_state(self, tmp_path):
        """Test that every change of a dry run gets a writer with its own state."""
        loader = RevisionConfigLoader(
            {ref: self.config({'default': self.workflow(ref)}) for ref in ('0', '1', '2')}
        )

        ReloadingWorkflow.wrap(self.workflow('current', dry_run=True), loader).run(
            tmp_path / 'workdir', None, self.console
        )

        writers = self.destination.writers
        assert len({id(writer.state) for writer in writers}) == len(writers)
        assert [w.state.writes for w in writers if w.state.writes] == [['0'], ['1'], ['2']]
        assert all(processed.dry_run for processed in self.destination.processed)

    def test_run_options_are_kept(self, tmp_path):
        """Test that the reloaded workflow keeps the options of the run."""
        loader = RevisionConfigLoader(
            {ref: self.config({'default': self.workflow(ref)}) for ref in ('0', '1', '2')}
        )
        workflow = ReloadingWorkflow.wrap(self.workflow('current', last_revision='1'), loader)

        workflow.run(tmp_path / 'workdir', None, self.console)

        assert loader.loaded == ['2']
        assert [p.origin_ref.as_string() for p in self.destination.processed] == ['2']

    def test_invalid_configuration(self, tmp_path):
        """Test that a change without the workflow fails with the change reference."""
        loader = RevisionConfigLoader(
            {
                '0': self.config({'default': self.workflow('v0')}),
                '1': self.config({'other': self.workflow('v1', name='other')}, location='bad'),
            }
        )
        workflow = ReloadingWorkflow.wrap(self.workflow('current'), loader, ConfigValidator())

        with pytest.raises(ValidationException, match=r"Invalid configuration \[ref '1'"):
            workflow.run(tmp_path / 'workdir', None, self.console)

        assert [p.origin_ref.as_string() for p in self.destination.processed] == ['0']

    def test_not_a_workflow(self, tmp_path):
        """Test that a migration that is not a workflow is rejected."""
        loader = RevisionConfigLoader({'0': self.config({'default': object()})})
        workflow = ReloadingWorkflow.wrap(self.workflow('current'), loader)

        with pytest.raises(ValidationException, match='is not a workflow'):
            workflow.run(tmp_path / 'workdir', None, self.console)


class TestOriginConfigLoader:
    """Test loading configuration files stored in an origin."""

    CONFIG = """
workflows:
  - name: default
    origin:
      type: folder
    destination:
      type: folder
    authoring:
      default: Default <default@example.com>
    transformations:
      - type: replace
        before: foo
        after: {after}
"""

    def setup_method(self):
        """Set up test fixtures."""
        self.origin = DummyOrigin()
        self.origin.add_change(1000, {'repo-migrate.yaml': self.CONFIG.format(after='bar')})
        self.origin.add_change(
            1001,
            {'repo-migrate.yaml': self.CONFIG.format(after='baz'), 'code.txt': 'foo'},
        )
        self.console = TestingConsole()

    def test_load_for_revision(self):
        """Test that the configuration is read from the given revision."""
        loader = OriginConfigLoader(self.origin, tool_config=Config())

        config = loader.load_for_revision(self.console, self.origin.resolve('0'))

        assert config.location == 'repo-migrate.yaml@0'
        workflow = config.get_migration('default')
        assert isinstance(workflow.origin, FolderOrigin)
        assert isinstance(workflow.destination, FolderDestination)
        assert workflow.transformation.sequence[0].after == 'bar'

        later = loader.load_for_revision(self.console, self.origin.resolve('1'))
        assert later.get_migration('default').transformation.sequence[0].after == 'baz'

    def test_missing_file(self):
        """Test that a revision without the configuration file fails."""
        origin = DummyOrigin().add_change(1000, {'other.txt': 'x'})
        loader = OriginConfigLoader(origin)

        with pytest.raises(ValidationException, match="Cannot find 'repo-migrate.yaml'"):
            loader.load_for_revision(self.console, origin.resolve('0'))

    def test_load_without_initial(self):
        """Test that the current configuration needs an initial loader."""
        with pytest.raises(ValidationException):
            OriginConfigLoader(self.origin).load(self.console)
