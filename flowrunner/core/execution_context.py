"""Per-run record of node outcomes and the execution log."""

import copy
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from ..models.core import ExecutionLogEntry, Node, NodeOutcome, OutcomeStatus, StepResult, utcnow
from .exceptions import WorkflowEngineError
from .logging import get_logger

logger = get_logger(__name__)

ExecutionListener = Callable[[ExecutionLogEntry], Any]


class ExecutionContext:
    """
    Outcomes for every scheduled node of a single run.

    Owned by the orchestrator driving the run. Readers get copies through
    :meth:`snapshot` and :attr:`logs`; only the record_* methods write.
    """

    def __init__(self, run_id: str, order: Iterable[str], listener: Optional[ExecutionListener] = None):
        self.run_id = run_id
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self._outcomes: Dict[str, NodeOutcome] = {node_id: NodeOutcome() for node_id in order}
        self._logs: List[ExecutionLogEntry] = []
        self._listener = listener

    def outcome(self, node_id: str) -> NodeOutcome:
        return self._outcomes[node_id]

    def status(self, node_id: str) -> OutcomeStatus:
        return self._outcomes[node_id].status

    def snapshot(self) -> Mapping[str, NodeOutcome]:
        """Read-only copy of the current outcomes, keyed by node id."""
        return MappingProxyType({node_id: outcome.model_copy(deep=True) for node_id, outcome in self._outcomes.items()})

    @property
    def logs(self) -> List[ExecutionLogEntry]:
        return list(self._logs)

    def node_ids_with_status(self, *statuses: OutcomeStatus) -> List[str]:
        return [node_id for node_id, outcome in self._outcomes.items() if outcome.status in statuses]

    @property
    def is_complete(self) -> bool:
        return all(outcome.status.is_terminal for outcome in self._outcomes.values())

    def mark_running(self, node: Node, inputs: Dict[str, Any]) -> None:
        outcome = self._outcomes[node.id]
        outcome.status = OutcomeStatus.RUNNING
        outcome.started_at = utcnow()
        self._log(node, OutcomeStatus.RUNNING, f"{node.type} started", input=inputs)

    def record_success(self, node: Node, result: StepResult, inputs: Dict[str, Any]) -> None:
        outcome = self._finish(node.id, OutcomeStatus.SUCCEEDED)
        outcome.value = copy.deepcopy(result.output)
        outcome.branch = result.branch
        message = f"{node.type} executed successfully"
        if result.branch is not None:
            message += f" (branch: {result.branch.value})"
        self._log(
            node, OutcomeStatus.SUCCEEDED, message,
            input=inputs, output=result.output, duration_ms=self._duration_ms(outcome),
        )

    def record_failure(self, node: Node, error: Exception, inputs: Optional[Dict[str, Any]] = None) -> None:
        outcome = self._finish(node.id, OutcomeStatus.FAILED)
        if isinstance(error, WorkflowEngineError):
            outcome.error, outcome.error_details = error.message, error.to_dict()
        else:
            outcome.error = str(error)
        self._log(
            node, OutcomeStatus.FAILED, f"{node.type} failed: {outcome.error}",
            input=inputs, error=outcome.error, error_details=outcome.error_details,
            duration_ms=self._duration_ms(outcome),
        )

    def record_skipped(self, node: Node, reason: str) -> None:
        self._finish(node.id, OutcomeStatus.SKIPPED)
        self._log(node, OutcomeStatus.SKIPPED, reason)

    def record_aborted(self, node: Node, reason: str = "Execution cancelled") -> None:
        if self._outcomes[node.id].status.is_terminal:
            return
        self._finish(node.id, OutcomeStatus.ABORTED)
        self._log(node, OutcomeStatus.ABORTED, reason)

    def _finish(self, node_id: str, status: OutcomeStatus) -> NodeOutcome:
        outcome = self._outcomes[node_id]
        outcome.status = status
        outcome.completed_at = utcnow()
        return outcome

    @staticmethod
    def _duration_ms(outcome: NodeOutcome) -> Optional[float]:
        if outcome.started_at is None or outcome.completed_at is None:
            return None
        return round((outcome.completed_at - outcome.started_at).total_seconds() * 1000, 3)

    def _log(self, node: Node, status: OutcomeStatus, message: str, **fields) -> None:
        entry = ExecutionLogEntry(
            run_id=self.run_id,
            node_id=node.id,
            node_name=node.label or node.id,
            status=status,
            message=message,
            **{key: copy.deepcopy(value) for key, value in fields.items()},
        )
        self._logs.append(entry)

        if self._listener is not None:
            try:
                self._listener(entry)
            except Exception as e:
                # Listener errors never reach the run
                logger.error(f"Execution listener failed for node {node.id}: {str(e)}")
