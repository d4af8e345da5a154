"""Delay executor."""

import asyncio
import copy

from ..core.logging import get_logger
from ..models.core import DelayConfig, NodeType, StepResult
from .base import StepExecutor

logger = get_logger(__name__)


class DelayExecutor(StepExecutor):
    """Suspends its own chain for the configured time, then passes its input through."""

    node_type = NodeType.DELAY.value
    config_model = DelayConfig

    async def run(self, config: DelayConfig, inputs, context) -> StepResult:
        requested = config.total_seconds
        cap = context.settings.max_delay_seconds
        actual = min(requested, cap) if cap is not None else requested

        if actual < requested:
            logger.debug(f"Delay on {context.node_id} capped from {requested}s to {actual}s")

        await asyncio.sleep(actual)

        return StepResult(
            output=copy.deepcopy(inputs),
            details={
                "configured": {"duration": config.duration, "unit": config.unit.value},
                "actual_seconds": actual,
            },
        )
