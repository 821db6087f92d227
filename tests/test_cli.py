"""Tests for CLI interface."""

import pytest
from click.testing import CliRunner

from repo_migrate.cli.arguments import MainArguments, Subcommand
from repo_migrate.cli.main import cli
from repo_migrate.exceptions import CommandLineException, ExitCode

MIGRATION_CONFIG = """
workflows:
  - name: default
    origin:
      type: folder
    destination:
      type: folder
    authoring:
      default: Bot <bot@example.com>
    transformations:
      - type: replace
        before: internal
        after: public
"""


class TestMainArguments:
    """Test parsing of the positional arguments."""

    def test_config_only(self):
        """Test that the subcommand and workflow have defaults."""
        args = MainArguments.parse(['repo-migrate.yaml'])

        assert args == MainArguments(Subcommand.MIGRATE, 'repo-migrate.yaml', 'default', None)

    def test_all_arguments(self):
        """Test the full form of the arguments."""
        args = MainArguments.parse(['MIGRATE', 'config.yml', 'export', 'main'])

        assert args.subcommand == Subcommand.MIGRATE
        assert args.config_path == 'config.yml'
        assert args.workflow_name == 'export'
        assert args.source_ref == 'main'

    def test_source_ref_without_subcommand(self):
        """Test a source reference right after the configuration."""
        args = MainArguments.parse(['config.yaml', 'export', 'v1.0'])

        assert args.subcommand == Subcommand.MIGRATE
        assert args.source_ref == 'v1.0'

    @pytest.mark.parametrize(
        'arguments,message',
        [
            ([], 'Expected at least a configuration file.'),
            (['migrate', 'a.yaml', 'b', 'c', 'd'], 'Expected at most four arguments.'),
            (['publish', 'a.yaml'], "Invalid subcommand 'publish'"),
            (['config.json'], "Invalid subcommand 'config.json'"),
            (['validate'], "Configuration file missing for 'validate' subcommand."),
            (['info', 'a.yaml', 'default', 'main'], "Too many arguments for subcommand 'info'"),
        ],
    )
    def test_invalid_arguments(self, arguments, message):
        """Test invalid argument combinations."""
        with pytest.raises(CommandLineException) as exc_info:
            MainArguments.parse(arguments)

        assert str(exc_info.value) == message
        assert exc_info.value.exit_code == ExitCode.COMMAND_LINE_ERROR


class TestCLI:
    """Test CLI commands."""

    @pytest.fixture(autouse=True)
    def setup(self, tmp_path, monkeypatch):
        """Set up test fixtures."""
        monkeypatch.chdir(tmp_path)
        self.runner = CliRunner()
        self.tmp_path = tmp_path
        self.config_path = tmp_path / 'repo-migrate.yaml'
        self.config_path.write_text(MIGRATION_CONFIG)
        self.source = tmp_path / 'source'
        self.source.mkdir()
        (self.source / 'app.txt').write_text('internal app')
        self.destination = tmp_path / 'destination'

    def invoke(self, *arguments, options=()):
        return self.runner.invoke(
            cli,
            [
                '--folder-dir',
                str(self.destination),
                '--work-dir',
                str(self.tmp_path / 'workdir'),
                *options,
                *arguments,
            ],
        )

    def test_cli_help(self):
        """Test CLI help command."""
        result = self.runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert 'Migrate changes' in result.output
        assert '--dry-run' in result.output
        assert '--last-rev' in result.output

    def test_cli_version(self):
        """Test CLI version command."""
        result = self.runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert '0.1.0' in result.output

    def test_missing_arguments(self):
        """Test that a configuration file is required."""
        result = self.runner.invoke(cli, [])

        assert result.exit_code == ExitCode.COMMAND_LINE_ERROR
        assert 'Expected at least a configuration file.' in result.output

    def test_invalid_subcommand(self):
        """Test an unknown subcommand."""
        result = self.runner.invoke(cli, ['publish', str(self.config_path)])

        assert result.exit_code == ExitCode.COMMAND_LINE_ERROR
        assert "Invalid subcommand 'publish'" in result.output

    def test_migrate_command_success(self):
        """Test a successful folder migration."""
        result = self.invoke(str(self.config_path), 'default', str(self.source))

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert 'Migration completed successfully' in result.output
        assert (self.destination / 'app.txt').read_text() == 'public app'

    def test_migrate_command_no_changes(self):
        """Test that migrating twice exits with the no-op code."""
        self.invoke(str(self.config_path), 'default', str(self.source))

        result = self.invoke('migrate', str(self.config_path), 'default', str(self.source))

        assert result.exit_code == ExitCode.NO_OP
        assert 'No changes to migrate' in result.output

    def test_migrate_command_dry_run(self):
        """Test that dry runs do not write the destination."""
        result = self.invoke(
            str(self.config_path), 'default', str(self.source), options=['--dry-run']
        )

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert 'dry-run mode' in result.output
        assert not (self.destination / 'app.txt').exists()

    def test_migrate_command_bad_source(self):
        """Test that an unresolvable source reference is a repository error."""
        result = self.invoke(str(self.config_path), 'default', str(self.tmp_path / 'missing'))

        assert result.exit_code == ExitCode.REPOSITORY_ERROR
        assert 'Migrate failed' in result.output

    def test_validate_command(self):
        """Test validating a configuration file."""
        result = self.invoke('validate', str(self.config_path))

        assert result.exit_code == ExitCode.SUCCESS
        assert 'Configuration is valid' in result.output

    def test_validate_command_unknown_workflow(self):
        """Test validating a workflow that does not exist."""
        result = self.invoke('validate', str(self.config_path), 'missing')

        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        assert "No migration with name 'missing'" in result.output

    def test_info_command_failure(self):
        """Test that info reports origin errors."""
        result = self.invoke('info', str(self.config_path))

        assert result.exit_code == ExitCode.REPOSITORY_ERROR
        assert 'Info failed' in result.output

    def test_invalid_tool_config(self):
        """Test that an invalid tool configuration is rejected."""
        tool_config = self.tmp_path / 'tool.yaml'
        tool_config.write_text('source:\n  url: https://example.com\n')

        result = self.invoke(str(self.config_path), options=['--config', str(tool_config)])

        assert result.exit_code == ExitCode.CONFIGURATION_ERROR
        assert 'Failed to load configuration' in result.output

    def test_tool_config_file(self):
        """Test that the tool configuration file is used."""
        tool_config = self.tmp_path / 'tool.yaml'
        tool_config.write_text('workflow:\n  dry_run: true\n')

        result = self.invoke(
            str(self.config_path), 'default', str(self.source), options=['-c', str(tool_config)]
        )

        assert result.exit_code == ExitCode.SUCCESS, result.output
        assert not (self.destination / 'app.txt').exists()
