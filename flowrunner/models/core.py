"""Core Pydantic models for the execution engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


def utcnow() -> datetime:
    """Timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class NodeCategory(str, Enum):
    """UI grouping of node types. Not used for executor dispatch."""
    TRIGGER = "trigger"
    LOGIC = "logic"
    ACTION = "action"


class NodeType(str, Enum):
    """Concrete step kinds understood by the built-in executors."""
    MANUAL_TRIGGER = "manual-trigger"
    WEBHOOK_TRIGGER = "webhook-trigger"
    HTTP_REQUEST = "http-request"
    CONDITION = "condition"
    DELAY = "delay"
    TRANSFORM = "transform"


# Category implied by each built-in type, used when a snapshot omits it.
DEFAULT_CATEGORIES: Dict[str, NodeCategory] = {
    NodeType.MANUAL_TRIGGER.value: NodeCategory.TRIGGER,
    NodeType.WEBHOOK_TRIGGER.value: NodeCategory.TRIGGER,
    NodeType.HTTP_REQUEST.value: NodeCategory.ACTION,
    NodeType.DELAY.value: NodeCategory.ACTION,
    NodeType.CONDITION.value: NodeCategory.LOGIC,
    NodeType.TRANSFORM.value: NodeCategory.LOGIC,
}


class BranchSelector(str, Enum):
    """Branch chosen by a logic node; matched against edge handles."""
    TRUE = "true"
    FALSE = "false"


class OutcomeStatus(str, Enum):
    """Per-node outcome within a single run."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self not in (OutcomeStatus.PENDING, OutcomeStatus.RUNNING)


class RunState(str, Enum):
    """Lifecycle of the orchestrator."""
    IDLE = "idle"
    INITIALIZED = "initialized"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABORTED = "aborted"


class ConditionOperator(str, Enum):
    """Comparison operators supported by condition nodes."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUALS = "greater_than_or_equals"
    LESS_THAN_OR_EQUALS = "less_than_or_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    IS_TRUE = "is_true"
    IS_FALSE = "is_false"


class TransformOperation(str, Enum):
    """Field operations supported by transform nodes."""
    SET = "set"
    DELETE = "delete"
    RENAME = "rename"
    APPEND = "append"
    PREPEND = "prepend"
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"
    TRIM = "trim"
    REPLACE = "replace"


class DelayUnit(str, Enum):
    """Time units for delay nodes."""
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"

    @property
    def seconds(self) -> int:
        return {"seconds": 1, "minutes": 60, "hours": 3600}[self.value]


class HttpMethod(str, Enum):
    """HTTP verbs accepted by http-request and webhook-trigger nodes."""
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"
    PATCH = "PATCH"


# --------------------------------------------------------------------------
# Per-type node configuration (tagged union keyed by NodeType)
# --------------------------------------------------------------------------

class ManualTriggerConfig(BaseModel):
    """Configuration for manual-trigger nodes."""
    name: str = Field(default="Manual Start", description="Display name of the trigger")


class WebhookTriggerConfig(BaseModel):
    """Configuration for webhook-trigger nodes."""
    url: str = Field(default="", description="Webhook URL the workflow listens on")
    method: HttpMethod = Field(default=HttpMethod.POST)
    headers: Dict[str, str] = Field(default_factory=dict)


class HttpRequestConfig(BaseModel):
    """Configuration for http-request nodes."""
    url: str = Field(..., description="Target URL")
    method: HttpMethod = Field(default=HttpMethod.GET)
    headers: Dict[str, str] = Field(default_factory=dict)
    body: Optional[str] = Field(None, description="Raw request body")
    timeout: Optional[int] = Field(None, description="Request timeout in milliseconds")

    @field_validator("url")
    @classmethod
    def validate_url(cls, url):
        """Require an absolute http(s) URL."""
        if not url or not url.strip():
            raise ValueError("URL is required")
        url = url.strip()
        if not url.lower().startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return url

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, method):
        if isinstance(method, str):
            return method.upper()
        return method

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, timeout):
        """Ensure timeout is positive if specified."""
        if timeout is not None and timeout <= 0:
            raise ValueError("Timeout must be a positive integer")
        return timeout


class ConditionConfig(BaseModel):
    """Configuration for condition nodes."""
    expression: str = Field(
        default="",
        validation_alias=AliasChoices("expression", "field"),
        description="Dot path into the input payload",
    )
    operator: ConditionOperator = Field(default=ConditionOperator.EQUALS)
    value: Any = Field(default=None, description="Value compared against the resolved expression")


class DelayConfig(BaseModel):
    """Configuration for delay nodes."""
    duration: float = Field(..., description="Amount of time to wait")
    unit: DelayUnit = Field(default=DelayUnit.SECONDS)

    @field_validator("duration")
    @classmethod
    def validate_duration(cls, duration):
        if duration <= 0:
            raise ValueError("Duration must be a positive number")
        return duration

    @property
    def total_seconds(self) -> float:
        return self.duration * self.unit.seconds


class Transformation(BaseModel):
    """A single field operation inside a transform node."""
    field: str = Field(..., description="Dot path of the field to operate on")
    operation: TransformOperation
    value: Any = None

    @field_validator("field")
    @classmethod
    def validate_field(cls, field):
        if not field or not field.strip():
            raise ValueError("Transformation field cannot be empty")
        return field.strip()


class TransformConfig(BaseModel):
    """Configuration for transform nodes."""
    transformations: List[Transformation] = Field(default_factory=list)


NODE_CONFIG_MODELS: Dict[str, Type[BaseModel]] = {
    NodeType.MANUAL_TRIGGER.value: ManualTriggerConfig,
    NodeType.WEBHOOK_TRIGGER.value: WebhookTriggerConfig,
    NodeType.HTTP_REQUEST.value: HttpRequestConfig,
    NodeType.CONDITION.value: ConditionConfig,
    NodeType.DELAY.value: DelayConfig,
    NodeType.TRANSFORM.value: TransformConfig,
}


# --------------------------------------------------------------------------
# Graph snapshot
# --------------------------------------------------------------------------

class Node(BaseModel):
    """Immutable snapshot of a workflow node."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Unique identifier for the node")
    type: str = Field(..., description="Concrete step kind, selects the executor")
    category: Optional[NodeCategory] = Field(None, description="UI grouping of the node type")
    label: Optional[str] = Field(None, description="Display name used in the execution log")
    config: Dict[str, Any] = Field(default_factory=dict, description="Opaque per-type configuration")
    is_valid: bool = Field(default=True, alias="isValid")

    @model_validator(mode="before")
    @classmethod
    def normalize_snapshot(cls, data):
        """Accept canvas nodes that keep their payload under ``data`` and fill in defaults."""
        if not isinstance(data, dict):
            return data
        if isinstance(data.get("data"), dict):
            flattened = {key: value for key, value in data.items() if key not in ("data", "position")}
            for key, value in data["data"].items():
                flattened.setdefault(key, value)
            data = flattened
        else:
            data = dict(data)
        if data.get("category") is None and data.get("type") in DEFAULT_CATEGORIES:
            data["category"] = DEFAULT_CATEGORIES[data["type"]]
        if not data.get("label"):
            data["label"] = data.get("id")
        return data

    @field_validator("id", "type", mode="before")
    @classmethod
    def validate_not_empty(cls, value):
        if isinstance(value, Enum):
            value = value.value
        if not value or not str(value).strip():
            raise ValueError("Node id and type cannot be empty")
        return str(value).strip()

    @property
    def is_logic(self) -> bool:
        return self.category == NodeCategory.LOGIC


class Edge(BaseModel):
    """Immutable snapshot of a directed link between two nodes."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(..., description="Unique identifier for the edge")
    source: str = Field(..., description="Source node ID")
    target: str = Field(..., description="Target node ID")
    source_handle: Optional[str] = Field(
        None,
        alias="sourceHandle",
        description="Output port of the source; absent means unconditional",
    )
    label: Optional[str] = Field(None, description="Display only")

    @field_validator("source_handle")
    @classmethod
    def blank_handle_is_default(cls, handle):
        if handle is not None and not handle.strip():
            return None
        return handle


# --------------------------------------------------------------------------
# Execution records
# --------------------------------------------------------------------------

class StepResult(BaseModel):
    """What a step executor hands back to the orchestrator."""
    output: Dict[str, Any] = Field(default_factory=dict, description="Payload passed downstream")
    branch: Optional[BranchSelector] = Field(None, description="Selected branch for logic nodes")
    details: Dict[str, Any] = Field(default_factory=dict, description="Diagnostics for the execution log")


class NodeOutcome(BaseModel):
    """Outcome of one node within one run."""
    status: OutcomeStatus = OutcomeStatus.PENDING
    value: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    branch: Optional[BranchSelector] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ExecutionLogEntry(BaseModel):
    """Log entry for node execution events, shown in the execution log panel."""
    timestamp: datetime = Field(default_factory=utcnow)
    run_id: str
    node_id: str
    node_name: str
    status: OutcomeStatus
    message: str
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    duration_ms: Optional[float] = None


class GraphReport(BaseModel):
    """Structural diagnostics gathered while building the adjacency graph."""
    dangling_edges: List[str] = Field(default_factory=list)
    duplicate_nodes: List[str] = Field(default_factory=list)
    unscheduled_nodes: List[str] = Field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.unscheduled_nodes)

    @property
    def warnings(self) -> List[str]:
        messages = []
        if self.dangling_edges:
            messages.append(f"Dangling edges ignored: {', '.join(self.dangling_edges)}")
        if self.duplicate_nodes:
            messages.append(f"Duplicate node ids ignored: {', '.join(self.duplicate_nodes)}")
        if self.unscheduled_nodes:
            messages.append(f"Nodes on cycles will not run: {', '.join(self.unscheduled_nodes)}")
        return messages


class ExecutionResult(BaseModel):
    """Aggregate outcome of a run."""
    run_id: str
    state: RunState
    order: List[str] = Field(default_factory=list)
    outcomes: Dict[str, NodeOutcome] = Field(default_factory=dict)
    logs: List[ExecutionLogEntry] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None

    def nodes_with_status(self, status: OutcomeStatus) -> List[str]:
        return [node_id for node_id in self.order if self.outcomes[node_id].status == status]

    def output_of(self, node_id: str) -> Optional[Dict[str, Any]]:
        outcome = self.outcomes.get(node_id)
        return outcome.value if outcome else None
