"""Built-in step executors, one per node type."""

from .base import StepContext, StepExecutor
from .delay import DelayExecutor
from .http import HttpRequestExecutor
from .logic import ConditionExecutor, TransformExecutor
from .trigger import ManualTriggerExecutor, WebhookTriggerExecutor

BUILTIN_EXECUTORS = (
    ManualTriggerExecutor,
    WebhookTriggerExecutor,
    HttpRequestExecutor,
    ConditionExecutor,
    DelayExecutor,
    TransformExecutor,
)

__all__ = [
    "BUILTIN_EXECUTORS",
    "ConditionExecutor",
    "DelayExecutor",
    "HttpRequestExecutor",
    "ManualTriggerExecutor",
    "StepContext",
    "StepExecutor",
    "TransformExecutor",
    "WebhookTriggerExecutor",
]
