"""Trigger executors: the zero-dependency entry points of a workflow."""

import copy

from ..models.core import ManualTriggerConfig, NodeType, StepResult, WebhookTriggerConfig, utcnow
from .base import StepExecutor


class ManualTriggerExecutor(StepExecutor):
    """Succeeds immediately, emitting the start signal and the run's trigger payload."""

    node_type = NodeType.MANUAL_TRIGGER.value
    config_model = ManualTriggerConfig

    async def run(self, config: ManualTriggerConfig, inputs, context) -> StepResult:
        return StepResult(
            output={
                "triggered": True,
                "trigger": config.name,
                "timestamp": utcnow().isoformat(),
                "data": copy.deepcopy(context.trigger_payload),
            }
        )


class WebhookTriggerExecutor(StepExecutor):
    """Emits the webhook's request shape with the run's trigger payload as its data."""

    node_type = NodeType.WEBHOOK_TRIGGER.value
    config_model = WebhookTriggerConfig

    async def run(self, config: WebhookTriggerConfig, inputs, context) -> StepResult:
        return StepResult(
            output={
                "triggered": True,
                "method": config.method.value,
                "url": config.url,
                "headers": dict(config.headers),
                "timestamp": utcnow().isoformat(),
                "data": copy.deepcopy(context.trigger_payload),
            }
        )
