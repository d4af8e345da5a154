"""Base class and runtime context shared by all step executors."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Type

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import EngineConfig
from ..core.exceptions import StepConfigurationError, StepExecutionError
from ..models.core import StepResult


class EmptyConfig(BaseModel):
    """Config model for executors that declare none; keeps every key as given."""
    model_config = ConfigDict(extra="allow")


class StepContext:
    """Runtime services available to an executor for one node of one run."""

    def __init__(
        self,
        run_id: str,
        node_id: str,
        node_type: str,
        settings: EngineConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        trigger_payload: Optional[Dict[str, Any]] = None,
    ):
        self.run_id = run_id
        self.node_id = node_id
        self.node_type = node_type
        self.settings = settings
        self.http_client = http_client
        self.trigger_payload = trigger_payload or {}


class StepExecutor(ABC):
    """
    Produces a result for one node type from its config and upstream inputs.

    Subclasses declare the node ``node_type`` they serve and the pydantic
    ``config_model`` their config must satisfy, then implement :meth:`run`.
    Failures are reported by raising :class:`StepExecutionError` subclasses.
    """

    node_type: str = ""
    config_model: Type[BaseModel] = EmptyConfig
    config_error: Type[StepExecutionError] = StepConfigurationError

    def parse_config(self, config: Dict[str, Any], context: StepContext) -> BaseModel:
        try:
            return self.config_model.model_validate(config)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(loc) for loc in error['loc']) or 'config'}: {error['msg']}"
                for error in e.errors()
            )
            raise self.config_error(
                f"Invalid {self.node_type} configuration: {problems}",
                node_id=context.node_id,
                node_type=self.node_type,
            ) from e

    async def execute(self, config: Dict[str, Any], inputs: Dict[str, Any], context: StepContext) -> StepResult:
        """Validate ``config`` against the type's shape, then run the step."""
        parsed = self.parse_config(config, context)
        return await self.run(parsed, inputs, context)

    @abstractmethod
    async def run(self, config: Any, inputs: Dict[str, Any], context: StepContext) -> StepResult:
        """Produce a result or raise a StepExecutionError."""
