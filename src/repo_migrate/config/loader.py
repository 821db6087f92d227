"""Loading of migration configuration files."""

import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field, ValidationError, validator

from ..exceptions import ValidationException
from ..folder.destination import FolderDestination
from ..folder.origin import FolderOrigin
from ..gerrit.destination import GerritDestination
from ..git.destination import GitDestination
from ..git.origin import GitOrigin
from ..migration.destination import Destination
from ..migration.origin import Origin
from ..migration.workflow import Workflow, WorkflowMode
from ..models.author import Authoring, AuthoringMode
from ..models.revision import Revision
from ..transform import ExplicitTransform, MapAuthor, Move, Replace, Sequence
from ..transform.base import Transformation
from ..utils.console import Console
from ..utils.glob import Glob
from .config import Config

DEFAULT_CONFIG_NAME = 'repo-migrate.yaml'


class GlobSpec(BaseModel):
    """A glob as written in the configuration."""

    include: List[str] = Field(default_factory=lambda: ['**'])
    exclude: List[str] = Field(default_factory=list)

    def build(self) -> Glob:
        return Glob(self.include, self.exclude or None)


def _glob_value(value: Any) -> Any:
    # A bare list is a shorthand for the include patterns
    if isinstance(value, list):
        return {'include': value}
    return value


class GitOriginSpec(BaseModel):
    type: str
    url: str
    ref: Optional[str] = None

    class Config:
        extra = 'forbid'


class FolderOriginSpec(BaseModel):
    type: str

    class Config:
        extra = 'forbid'


class GitDestinationSpec(BaseModel):
    type: str
    url: str
    fetch: str = 'master'
    push: Optional[str] = None

    class Config:
        extra = 'forbid'


class GerritDestinationSpec(BaseModel):
    type: str
    url: str
    fetch: str = 'master'
    push_to_refs_for: Optional[str] = None

    class Config:
        extra = 'forbid'


class FolderDestinationSpec(BaseModel):
    type: str

    class Config:
        extra = 'forbid'


class AuthoringSpec(BaseModel):
    """Authoring policy as written in the configuration."""

    default: str = Field(..., description="Default author, 'Name <email>'")
    mode: AuthoringMode = Field(default=AuthoringMode.OVERWRITE)
    allowlist: List[str] = Field(default_factory=list)

    class Config:
        extra = 'forbid'

    def build(self) -> Authoring:
        if self.mode == AuthoringMode.PASS_THRU:
            return Authoring.pass_thru(self.default)
        if self.mode == AuthoringMode.ALLOWLISTED:
            return Authoring.allowlisted(self.default, self.allowlist)
        return Authoring.overwrite(self.default)


class MoveSpec(BaseModel):
    type: str
    before: str
    after: str
    paths: Optional[GlobSpec] = None
    overwrite: bool = False

    class Config:
        extra = 'forbid'

    @validator('paths', pre=True)
    def validate_paths(cls, v):
        return _glob_value(v)


class ReplaceSpec(BaseModel):
    type: str
    before: str
    after: str
    regex_groups: Dict[str, str] = Field(default_factory=dict)
    paths: Optional[GlobSpec] = None
    multiline: bool = False

    class Config:
        extra = 'forbid'

    @validator('paths', pre=True)
    def validate_paths(cls, v):
        return _glob_value(v)


class MapAuthorSpec(BaseModel):
    type: str
    authors: Dict[str, str]
    reversible: bool = False
    fail_if_not_found: bool = False
    fail_if_not_found_in_reverse: bool = False

    class Config:
        extra = 'forbid'


class TransformSpec(BaseModel):
    type: str
    transformations: List[Dict[str, Any]]
    reversal: Optional[List[Dict[str, Any]]] = None
    ignore_noop: bool = False
    name: Optional[str] = None

    class Config:
        extra = 'forbid'


class WorkflowSpec(BaseModel):
    """A workflow entry of the configuration file."""

    name: str = Field(default='default', description='Workflow name')
    description: Optional[str] = None
    origin: Dict[str, Any]
    destination: Dict[str, Any]
    authoring: AuthoringSpec
    mode: WorkflowMode = Field(default=WorkflowMode.SQUASH)
    origin_files: GlobSpec = Field(default_factory=GlobSpec)
    destination_files: GlobSpec = Field(default_factory=GlobSpec)
    transformations: List[Dict[str, Any]] = Field(default_factory=list)
    reversible_check: bool = False
    ask_for_confirmation: bool = False

    class Config:
        extra = 'forbid'

    @validator('origin_files', 'destination_files', pre=True)
    def validate_globs(cls, v):
        """Accept a list of include patterns as a glob."""
        return _glob_value(v)

    @validator('mode', pre=True)
    def validate_mode(cls, v):
        """Accept modes in any case."""
        return v.upper() if isinstance(v, str) else v


class MigrationConfigSpec(BaseModel):
    workflows: List[WorkflowSpec]

    class Config:
        extra = 'forbid'


@dataclass(frozen=True)
class MigrationConfig:
    """Migrations loaded from a configuration file, by name."""

    location: str
    migrations: Dict[str, Any] = field(default_factory=dict)

    def get_migration(self, name: str) -> Any:
        """Return a migration by name.

        Raises:
            ValidationException: If there is no migration with that name
        """
        if name not in self.migrations:
            raise ValidationException(
                f"No migration with name '{name}' exists in {self.location}. "
                f"Valid migrations: {sorted(self.migrations)}"
            )
        return self.migrations[name]


class WorkflowBuilder:
    """Builds immutable workflows from validated specs."""

    def __init__(self, tool_config: Config):
        self.tool_config = tool_config

    def build(self, spec: WorkflowSpec) -> Workflow:
        transformation = Sequence.create(self.transformations(spec.transformations))
        workflow = Workflow(
            name=spec.name,
            origin=self.origin(spec.origin),
            destination=self.destination(spec.destination),
            authoring=spec.authoring.build(),
            transformation=transformation,
            mode=spec.mode,
            origin_files=spec.origin_files.build(),
            destination_files=spec.destination_files.build(),
            options=self.tool_config.workflow,
            reversible_check=spec.reversible_check,
            ask_for_confirmation=spec.ask_for_confirmation,
            description=spec.description,
        )
        return workflow

    def origin(self, data: Dict[str, Any]) -> Origin:
        kind = _type_of(data, 'origin')
        if kind == 'git':
            spec = _parse(GitOriginSpec, data)
            return GitOrigin(spec.url, spec.ref, self.tool_config.git)
        if kind == 'folder':
            _parse(FolderOriginSpec, data)
            return FolderOrigin(self.tool_config.folder)
        raise ValidationException(f"Unknown origin type '{kind}'. Valid types: git, folder")

    def destination(self, data: Dict[str, Any]) -> Destination:
        kind = _type_of(data, 'destination')
        if kind == 'git':
            spec = _parse(GitDestinationSpec, data)
            return GitDestination(spec.url, spec.fetch, spec.push, self.tool_config.git)
        if kind == 'gerrit':
            spec = _parse(GerritDestinationSpec, data)
            return GerritDestination(
                spec.url,
                spec.fetch,
                spec.push_to_refs_for,
                git_config=self.tool_config.git,
                gerrit_config=self.tool_config.gerrit,
            )
        if kind == 'folder':
            _parse(FolderDestinationSpec, data)
            return FolderDestination(self.tool_config.folder)
        raise ValidationException(
            f"Unknown destination type '{kind}'. Valid types: git, gerrit, folder"
        )

    def transformations(self, items: List[Dict[str, Any]]) -> List[Transformation]:
        return [self.transformation(item) for item in items]

    def transformation(self, data: Dict[str, Any]) -> Transformation:
        kind = _type_of(data, 'transformation')
        if kind == 'move':
            spec = _parse(MoveSpec, data)
            paths = spec.paths.build() if spec.paths else None
            return Move(spec.before, spec.after, paths=paths, overwrite=spec.overwrite)
        if kind == 'replace':
            spec = _parse(ReplaceSpec, data)
            paths = spec.paths.build() if spec.paths else None
            return Replace(
                spec.before,
                spec.after,
                regex_groups=spec.regex_groups,
                paths=paths,
                multiline=spec.multiline,
            )
        if kind == 'map_author':
            spec = _parse(MapAuthorSpec, data)
            return MapAuthor.create(
                spec.authors,
                reversible=spec.reversible,
                fail_if_not_found=spec.fail_if_not_found,
                fail_if_not_found_in_reverse=spec.fail_if_not_found_in_reverse,
            )
        if kind == 'transform':
            spec = _parse(TransformSpec, data)
            reversal = (
                self.transformations(spec.reversal) if spec.reversal is not None else None
            )
            return ExplicitTransform(
                self.transformations(spec.transformations),
                reversal=reversal,
                ignore_noop=spec.ignore_noop,
                name=spec.name,
            )
        raise ValidationException(
            f"Unknown transformation type '{kind}'. "
            'Valid types: move, replace, map_author, transform'
        )


def _type_of(data: Any, what: str) -> str:
    if not isinstance(data, dict) or not isinstance(data.get('type'), str):
        raise ValidationException(f"Every {what} needs a 'type' field: {data!r}")
    return data['type']


def _parse(model, data: Dict[str, Any]):
    try:
        return model(**data)
    except ValidationError as e:
        raise ValidationException(f"Invalid '{data.get('type')}' entry: {e}") from e


def parse_migration_config(
    content: Union[str, bytes], location: str, tool_config: Optional[Config] = None
) -> MigrationConfig:
    """Parse the YAML content of a configuration file.

    Raises:
        ValidationException: If the file is empty, malformed or has duplicated
            workflow names
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ValidationException(f'Cannot parse {location}: {e}') from e
    if not data:
        raise ValidationException(f'Configuration file {location} is empty')
    if not isinstance(data, dict):
        raise ValidationException(f"Configuration file {location} must be a mapping")

    try:
        spec = MigrationConfigSpec(**data)
    except ValidationError as e:
        raise ValidationException(f'Invalid configuration in {location}: {e}') from e

    builder = WorkflowBuilder(tool_config or Config())
    migrations: Dict[str, Any] = {}
    for workflow_spec in spec.workflows:
        if workflow_spec.name in migrations:
            raise ValidationException(
                f"Duplicated workflow name '{workflow_spec.name}' in {location}"
            )
        migrations[workflow_spec.name] = builder.build(workflow_spec)
    return MigrationConfig(location=location, migrations=migrations)


class ConfigLoader(ABC):
    """Loads a migration configuration."""

    def __init__(self, tool_config: Optional[Config] = None):
        self.tool_config = tool_config or Config()
        self.logger = logger.bind(component=self.__class__.__name__)

    @abstractmethod
    def location(self) -> str:
        """Human readable location of the configuration."""
        pass

    @abstractmethod
    def load(self, console: Console) -> MigrationConfig:
        pass

    def load_for_revision(self, console: Console, revision: Revision) -> MigrationConfig:
        """Load the configuration as of an origin revision.

        Raises:
            ValidationException: If the loader cannot read past revisions
        """
        raise ValidationException(
            f'Loading the configuration for a revision is not supported by {self.location()}'
        )


class FileConfigLoader(ConfigLoader):
    """Loads the configuration from a local file."""

    def __init__(self, path: Union[str, Path], tool_config: Optional[Config] = None):
        super().__init__(tool_config)
        self.path = Path(path)

    def location(self) -> str:
        return str(self.path)

    def load(self, console: Console) -> MigrationConfig:
        if not self.path.is_file():
            raise ValidationException(f'Configuration file not found: {self.path}')
        self.logger.info(f'Loading configuration from {self.path}')
        return parse_migration_config(
            self.path.read_text(encoding='utf-8'), self.location(), self.tool_config
        )


class OriginConfigLoader(ConfigLoader):
    """Loads the configuration file stored in an origin at a given revision.

    The current version, used by ``load``, comes from ``initial``.
    """

    def __init__(
        self,
        origin: Origin,
        config_path: str = DEFAULT_CONFIG_NAME,
        initial: Optional[ConfigLoader] = None,
        tool_config: Optional[Config] = None,
    ):
        super().__init__(tool_config)
        self.origin = origin
        self.config_path = config_path
        self.initial = initial

    def location(self) -> str:
        return f'{self.config_path} in {self.origin.origin_type}'

    def load(self, console: Console) -> MigrationConfig:
        if self.initial is None:
            raise ValidationException(f'No initial configuration for {self.location()}')
        return self.initial.load(console)

    def load_for_revision(self, console: Console, revision: Revision) -> MigrationConfig:
        console.progress(
            f"Loading configuration '{self.config_path}' at revision {revision.as_string()}"
        )
        reader = self.origin.new_reader(Glob([self.config_path]), _loader_authoring())
        with tempfile.TemporaryDirectory(prefix='repo-migrate-config-') as tmp:
            checkout = Path(tmp) / 'checkout'
            reader.checkout(revision, checkout)
            config_file = checkout / self.config_path
            if not config_file.is_file():
                raise ValidationException(
                    f"Cannot find '{self.config_path}' at revision {revision.as_string()}"
                )
            content = config_file.read_text(encoding='utf-8')
        return parse_migration_config(
            content, f'{self.config_path}@{revision.as_string()}', self.tool_config
        )


def _loader_authoring() -> Authoring:
    # Only files are read, the authoring is never used
    return Authoring.overwrite('Repo Migrate <noreply@repo-migrate.local>')

