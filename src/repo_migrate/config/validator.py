"""Semantic validation of loaded migration configurations."""

from dataclasses import dataclass, field
from typing import List

from loguru import logger

from ..exceptions import NonReversibleValidationException, ValidationException
from ..migration.workflow import Workflow, WorkflowMode
from ..transform.sequence import Sequence
from .loader import MigrationConfig


@dataclass
class ValidationResult:
    """Errors and warnings found in a configuration."""

    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def error(self, message: str) -> None:
        self.errors.append(message)

    def warning(self, message: str) -> None:
        self.warnings.append(message)


class ConfigValidator:
    """Checks a loaded configuration before running one of its workflows."""

    def __init__(self):
        self.logger = logger.bind(component='ConfigValidator')

    def validate(self, config: MigrationConfig, workflow_name: str) -> ValidationResult:
        """Validate the workflow ``workflow_name`` of ``config``.

        Args:
            config: Loaded configuration
            workflow_name: Workflow that is going to be run

        Returns:
            Errors and warnings. Errors prevent running the workflow.
        """
        result = ValidationResult()
        try:
            migration = config.get_migration(workflow_name)
        except ValidationException as e:
            result.error(str(e))
            return result

        if not isinstance(migration, Workflow):
            result.error(f"'{workflow_name}' is not a workflow")
            return result

        self._validate_workflow(migration, result)
        for message in result.warnings:
            self.logger.warning(message)
        for message in result.errors:
            self.logger.error(message)
        return result

    def _validate_workflow(self, workflow: Workflow, result: ValidationResult) -> None:
        if workflow.reversible_check:
            try:
                workflow.transformation.reverse()
            except NonReversibleValidationException as e:
                result.error(
                    f"Workflow '{workflow.name}' checks reversibility but its "
                    f'transformations are not reversible: {e}'
                )

        if (
            workflow.mode == WorkflowMode.CHANGE_REQUEST
            and workflow.destination.label_name_when_origin is None
            and not workflow.options.change_request_parent
        ):
            result.error(
                f"Workflow '{workflow.name}' uses {WorkflowMode.CHANGE_REQUEST.value} mode but "
                f'{workflow.destination.destination_type} cannot find the baseline of a change'
            )

        if isinstance(workflow.transformation, Sequence) and not workflow.transformation.sequence:
            result.warning(f"Workflow '{workflow.name}' has no transformations")

        if workflow.ask_for_confirmation and workflow.mode == WorkflowMode.ITERATIVE:
            result.warning(
                f"Workflow '{workflow.name}' asks for confirmation for every migrated change"
            )
