"""Data models for the execution engine."""

from .core import (
    BranchSelector,
    ConditionConfig,
    ConditionOperator,
    DelayConfig,
    DelayUnit,
    Edge,
    ExecutionLogEntry,
    ExecutionResult,
    GraphReport,
    HttpMethod,
    HttpRequestConfig,
    ManualTriggerConfig,
    Node,
    NodeCategory,
    NodeOutcome,
    NodeType,
    NODE_CONFIG_MODELS,
    OutcomeStatus,
    RunState,
    StepResult,
    TransformConfig,
    Transformation,
    TransformOperation,
    WebhookTriggerConfig,
)

__all__ = [
    "BranchSelector",
    "ConditionConfig",
    "ConditionOperator",
    "DelayConfig",
    "DelayUnit",
    "Edge",
    "ExecutionLogEntry",
    "ExecutionResult",
    "GraphReport",
    "HttpMethod",
    "HttpRequestConfig",
    "ManualTriggerConfig",
    "Node",
    "NodeCategory",
    "NodeOutcome",
    "NodeType",
    "NODE_CONFIG_MODELS",
    "OutcomeStatus",
    "RunState",
    "StepResult",
    "TransformConfig",
    "Transformation",
    "TransformOperation",
    "WebhookTriggerConfig",
]
