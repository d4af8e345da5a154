"""Execution Engine: schedules a workflow graph and drives each step to a terminal outcome."""

import asyncio
import copy
import uuid
from collections import deque
from contextlib import AsyncExitStack
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

import httpx
from pydantic import ValidationError

from ..config import EngineConfig, get_config
from ..executors.base import StepContext
from ..models.core import (
    Edge,
    ExecutionLogEntry,
    ExecutionResult,
    GraphReport,
    Node,
    NodeOutcome,
    OutcomeStatus,
    RunState,
    utcnow,
)
from .branch_resolver import BranchResolver
from .exceptions import ExecutionEngineError, ExecutorRegistryError, StepExecutionError, StepTimeoutError
from .execution_context import ExecutionContext, ExecutionListener
from .executor_registry import ExecutorRegistry
from .graph_builder import AdjacencyGraph, GraphBuilder
from .logging import clear_logging_context, get_logger, set_logging_context
from .scheduler import TopologicalScheduler

logger = get_logger(__name__)

NodeLike = Union[Node, Mapping[str, Any]]
EdgeLike = Union[Edge, Mapping[str, Any]]
WorkflowSource = Union[Callable[[], Tuple[Iterable[NodeLike], Iterable[EdgeLike]]], Any]


class ExecutionEngine:
    """
    Orchestrates one workflow run at a time.

    ``initialize()`` snapshots the graph, builds adjacency and computes the
    execution order; ``run()`` dispatches every scheduled node once all of
    its predecessors are terminal. Independent branches run concurrently on
    the event loop; a node never starts before its causal predecessors.

    States: idle -> initialized -> running (<-> paused) -> completed | aborted.
    """

    def __init__(
        self,
        workflow: Optional[WorkflowSource] = None,
        registry: Optional[ExecutorRegistry] = None,
        config: Optional[EngineConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        listener: Optional[ExecutionListener] = None,
    ):
        """Initialize the execution engine.

        Args:
            workflow: Graph provider read by ``initialize()``: an object with
                ``nodes`` and ``edges`` attributes, a mapping with those keys, or a
                zero-argument callable returning ``(nodes, edges)``
            registry: Executors by node type; built-ins when omitted
            config: Engine settings; the global configuration when omitted
            http_client: Shared client for http-request steps; one is created per run when omitted
            listener: Called with every execution log entry as it is recorded
        """
        self.registry = registry or ExecutorRegistry.with_builtins()
        self.config = config or get_config()
        self._workflow = workflow
        self._http_client = http_client
        self._listener = listener

        self._builder = GraphBuilder()
        self._scheduler = TopologicalScheduler()
        self._branch_resolver = BranchResolver()

        self._graph: Optional[AdjacencyGraph] = None
        self._order: List[str] = []
        self._context: Optional[ExecutionContext] = None
        self._state = RunState.IDLE
        self._generation = 0
        self._cancel_event: Optional[asyncio.Event] = None
        self._resume_event: Optional[asyncio.Event] = None

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def run_id(self) -> Optional[str]:
        return self._context.run_id if self._context else None

    @property
    def graph(self) -> Optional[AdjacencyGraph]:
        return self._graph

    @property
    def report(self) -> GraphReport:
        return self._graph.report if self._graph else GraphReport()

    @property
    def context(self) -> Mapping[str, NodeOutcome]:
        """Read-only view of the current run's outcomes (empty before initialize)."""
        return self._context.snapshot() if self._context else {}

    @property
    def logs(self) -> List[ExecutionLogEntry]:
        return self._context.logs if self._context else []

    def get_execution_order(self) -> List[str]:
        """Return the order computed by the last ``initialize()``."""
        return list(self._order)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def initialize(
        self,
        nodes: Optional[Iterable[NodeLike]] = None,
        edges: Optional[Iterable[EdgeLike]] = None,
    ) -> List[str]:
        """
        Snapshot the graph and compute its execution order.

        Any previous graph, order and execution context is discarded. A run
        still in flight is cancelled and loses the right to publish results.

        Args:
            nodes: Node snapshots; read from the workflow provider when both arguments are omitted
            edges: Edge snapshots

        Returns:
            List[str]: The new execution order

        Raises:
            ExecutionEngineError: If a node or edge cannot be read as a snapshot
        """
        if nodes is None and edges is None:
            nodes, edges = self._read_workflow()

        try:
            node_snapshots = [self._snapshot(Node, node) for node in nodes or ()]
            edge_snapshots = [self._snapshot(Edge, edge) for edge in edges or ()]
        except ValidationError as e:
            raise ExecutionEngineError(f"Invalid workflow snapshot: {e}") from e

        if self._state in (RunState.RUNNING, RunState.PAUSED):
            logger.warning(f"Re-initializing during run {self.run_id}; the run will be abandoned")
            self._cancel_event.set()
            self._resume_event.set()

        self._generation += 1
        self._graph = self._builder.build(node_snapshots, edge_snapshots)
        self._order = self._scheduler.schedule(self._graph)
        self._context = ExecutionContext(str(uuid.uuid4()), self._order, listener=self._listener)
        self._state = RunState.INITIALIZED

        invalid = [node.id for node in node_snapshots if not node.is_valid]
        if invalid:
            logger.warning(f"Nodes flagged invalid by the workflow model: {', '.join(invalid)}")

        logger.info(
            f"Initialized run {self._context.run_id}: {len(self._order)}/{len(self._graph)} nodes scheduled"
        )
        return list(self._order)

    async def start(self, trigger_payload: Optional[Dict[str, Any]] = None) -> ExecutionResult:
        """Re-read the workflow provider, then run it."""
        self.initialize()
        return await self.run(trigger_payload)

    async def run(self, trigger_payload: Optional[Dict[str, Any]] = None) -> ExecutionResult:
        """
        Execute the initialized graph.

        Args:
            trigger_payload: Data handed to trigger nodes

        Returns:
            ExecutionResult: Final state, per-node outcomes and the execution log

        Raises:
            ExecutionEngineError: If the engine is not initialized or a run is already active
        """
        if self._state in (RunState.RUNNING, RunState.PAUSED):
            raise ExecutionEngineError("A run is already in progress", run_id=self.run_id, state=self._state.value)
        if self._state != RunState.INITIALIZED:
            raise ExecutionEngineError(
                "initialize() must be called before run()", run_id=self.run_id, state=self._state.value
            )

        generation = self._generation
        graph, order, context = self._graph, list(self._order), self._context
        cancel_event, resume_event = asyncio.Event(), asyncio.Event()
        resume_event.set()
        self._cancel_event, self._resume_event = cancel_event, resume_event

        self._state = RunState.RUNNING
        context.started_at = utcnow()
        set_logging_context(run_id=context.run_id)
        logger.info(f"Starting run {context.run_id} with {len(order)} scheduled nodes")

        try:
            async with AsyncExitStack() as stack:
                client = self._http_client
                if client is None:
                    client = await stack.enter_async_context(httpx.AsyncClient())
                await self._drive(graph, order, context, client, trigger_payload or {}, cancel_event, resume_event)
        except asyncio.CancelledError:
            context.completed_at = utcnow()
            if generation == self._generation:
                self._state = RunState.ABORTED
            logger.info(f"Run {context.run_id} cancelled by its caller")
            raise
        except Exception as e:
            context.completed_at = utcnow()
            if generation == self._generation:
                self._state = RunState.ABORTED
            logger.error(f"Run {context.run_id} aborted by an internal error: {str(e)}")
            raise
        finally:
            clear_logging_context()

        context.completed_at = utcnow()
        cancelled = cancel_event.is_set()
        final_state = RunState.ABORTED if cancelled else RunState.COMPLETED

        if generation == self._generation:
            self._state = final_state
        else:
            final_state = RunState.ABORTED
            logger.info(f"Run {context.run_id} was superseded by a newer initialize()")

        logger.info(
            f"Run {context.run_id} {final_state.value}: "
            f"{len(context.node_ids_with_status(OutcomeStatus.SUCCEEDED))} succeeded, "
            f"{len(context.node_ids_with_status(OutcomeStatus.FAILED))} failed, "
            f"{len(context.node_ids_with_status(OutcomeStatus.SKIPPED))} skipped, "
            f"{len(context.node_ids_with_status(OutcomeStatus.ABORTED))} aborted"
        )

        return ExecutionResult(
            run_id=context.run_id,
            state=final_state,
            order=order,
            outcomes=dict(context.snapshot()),
            logs=context.logs,
            started_at=context.started_at,
            completed_at=context.completed_at,
        )

    def cancel(self) -> bool:
        """Stop dispatching, cancel in-flight steps and mark unfinished nodes aborted."""
        if self._state not in (RunState.RUNNING, RunState.PAUSED):
            logger.warning(f"Attempted to cancel while {self._state.value}")
            return False
        self._cancel_event.set()
        self._resume_event.set()
        logger.info(f"Cancellation requested for run {self.run_id}")
        return True

    def pause(self) -> bool:
        """Hold back new dispatches; steps already in flight keep going."""
        if self._state != RunState.RUNNING:
            return False
        self._resume_event.clear()
        self._state = RunState.PAUSED
        logger.info(f"Paused run {self.run_id}")
        return True

    def resume(self) -> bool:
        if self._state != RunState.PAUSED:
            return False
        self._state = RunState.RUNNING
        self._resume_event.set()
        logger.info(f"Resumed run {self.run_id}")
        return True

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    async def _drive(
        self,
        graph: AdjacencyGraph,
        order: List[str],
        context: ExecutionContext,
        client: httpx.AsyncClient,
        trigger_payload: Dict[str, Any],
        cancel_event: asyncio.Event,
        resume_event: asyncio.Event,
    ) -> None:
        scheduled = set(order)
        remaining = {
            node_id: sum(1 for edge in graph.incoming(node_id) if edge.source in scheduled) for node_id in order
        }
        ready = deque(node_id for node_id in order if remaining[node_id] == 0)
        active_edges: Set[str] = set()
        in_flight: Dict[asyncio.Task, str] = {}
        semaphore = asyncio.Semaphore(self.config.max_concurrent_steps)

        cancel_waiter = asyncio.ensure_future(cancel_event.wait())
        resume_waiter: Optional[asyncio.Future] = None

        def settle(node_id: str) -> None:
            outcome = context.outcome(node_id)
            outgoing = graph.outgoing(node_id)
            if outcome.status == OutcomeStatus.SUCCEEDED:
                node = graph.node(node_id)
                for edge in self._branch_resolver.active_edges(node, outgoing, outcome.branch):
                    active_edges.add(edge.id)
            for edge in outgoing:
                # Targets on a cycle were never scheduled
                if edge.target not in remaining:
                    continue
                remaining[edge.target] -= 1
                if remaining[edge.target] == 0:
                    ready.append(edge.target)

        try:
            while True:
                while ready and resume_event.is_set() and not cancel_event.is_set():
                    node_id = ready.popleft()
                    node = graph.node(node_id)
                    skip_reason, inputs = self._gather_inputs(graph, node_id, context, active_edges)
                    if skip_reason:
                        logger.debug(f"Skipping node {node_id}: {skip_reason}")
                        context.record_skipped(node, skip_reason)
                        settle(node_id)
                        continue

                    logger.debug(f"Dispatching node {node_id} ({node.type})")
                    task = asyncio.create_task(
                        self._execute_node(node, inputs, context, client, trigger_payload, semaphore)
                    )
                    in_flight[task] = node_id

                if cancel_event.is_set():
                    break
                if not in_flight and not ready:
                    break

                waiters = set(in_flight) | {cancel_waiter}
                if ready and not resume_event.is_set():
                    if resume_waiter is None or resume_waiter.done():
                        resume_waiter = asyncio.ensure_future(resume_event.wait())
                    waiters.add(resume_waiter)

                done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
                for task in done:
                    if task in in_flight:
                        settle(in_flight.pop(task))
        finally:
            cancel_waiter.cancel()
            if resume_waiter is not None:
                resume_waiter.cancel()

            if in_flight:
                for task in in_flight:
                    task.cancel()
                await asyncio.gather(*in_flight, return_exceptions=True)

            for node_id in context.node_ids_with_status(OutcomeStatus.PENDING, OutcomeStatus.RUNNING):
                context.record_aborted(graph.node(node_id))

    def _gather_inputs(
        self,
        graph: AdjacencyGraph,
        node_id: str,
        context: ExecutionContext,
        active_edges: Set[str],
    ) -> Tuple[Optional[str], Dict[str, Any]]:
        """
        Decide whether a ready node runs, and with what input.

        Returns ``(skip_reason, inputs)``. Any failed predecessor skips the node.
        Otherwise the node runs if it has no predecessors or at least one
        incoming edge is active; edges pruned by a branch or leaving a skipped
        node are inactive.
        """
        incoming = graph.incoming(node_id)
        if not incoming:
            return None, {}

        failed = [edge.source for edge in incoming if context.status(edge.source) == OutcomeStatus.FAILED]
        if failed:
            return f"Skipped because upstream node(s) failed: {', '.join(dict.fromkeys(failed))}", {}

        sources = list(dict.fromkeys(edge.source for edge in incoming if edge.id in active_edges))
        if not sources:
            return "Skipped because no incoming branch was taken", {}

        return None, self._merge_inputs(sources, context)

    @staticmethod
    def _merge_inputs(sources: List[str], context: ExecutionContext) -> Dict[str, Any]:
        """A single active predecessor passes its output through; several are keyed by node id."""
        if len(sources) == 1:
            return copy.deepcopy(context.outcome(sources[0]).value or {})
        return {source: copy.deepcopy(context.outcome(source).value or {}) for source in sources}

    async def _execute_node(
        self,
        node: Node,
        inputs: Dict[str, Any],
        context: ExecutionContext,
        client: httpx.AsyncClient,
        trigger_payload: Dict[str, Any],
        semaphore: asyncio.Semaphore,
    ) -> None:
        async with semaphore:
            try:
                executor = self.registry.get(node.type)
            except ExecutorRegistryError as e:
                context.record_failure(node, e, inputs)
                return

            step_context = StepContext(
                run_id=context.run_id,
                node_id=node.id,
                node_type=node.type,
                settings=self.config,
                http_client=client,
                trigger_payload=trigger_payload,
            )
            context.mark_running(node, inputs)
            timeout = self.config.node_timeout

            try:
                if timeout:
                    result = await asyncio.wait_for(executor.execute(node.config, inputs, step_context), timeout)
                else:
                    result = await executor.execute(node.config, inputs, step_context)
            except asyncio.CancelledError:
                context.record_aborted(node)
                raise
            except asyncio.TimeoutError:
                context.record_failure(
                    node,
                    StepTimeoutError(
                        f"Step exceeded {timeout}s", timeout=timeout, node_id=node.id, node_type=node.type
                    ),
                    inputs,
                )
            except StepExecutionError as e:
                context.record_failure(node, e, inputs)
            except Exception as e:
                logger.exception(f"Executor for node {node.id} raised unexpectedly")
                context.record_failure(node, e, inputs)
            else:
                context.record_success(node, result, inputs)

    # ------------------------------------------------------------------
    # Snapshotting
    # ------------------------------------------------------------------

    def _read_workflow(self) -> Tuple[Iterable[NodeLike], Iterable[EdgeLike]]:
        source = self._workflow
        if source is None:
            return [], []
        if callable(source):
            return source()
        if isinstance(source, Mapping):
            return source.get("nodes", []), source.get("edges", [])
        return getattr(source, "nodes", []), getattr(source, "edges", [])

    @staticmethod
    def _snapshot(model, item):
        """Deep-copy a node or edge so later mutation by the owner cannot leak in."""
        if isinstance(item, model):
            return item.model_copy(deep=True)
        if isinstance(item, Mapping):
            return model.model_validate(copy.deepcopy(dict(item)))
        return model.model_validate(item, from_attributes=True)
