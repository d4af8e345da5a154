"""Tests for the execution engine orchestrator."""

import asyncio
from types import SimpleNamespace

import httpx
import pytest

from conftest import chain, make_edge, make_node
from flowrunner.core.exceptions import ExecutionEngineError
from flowrunner.core.execution_engine import ExecutionEngine
from flowrunner.executors.base import StepExecutor
from flowrunner.models.core import OutcomeStatus, RunState, StepResult


class GateExecutor(StepExecutor):
    """Blocks until released, so tests can act while a step is in flight."""

    node_type = "gate"

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def run(self, config, inputs, context):
        self.started.set()
        await self.release.wait()
        return StepResult(output={"gated": True})


class BarrierExecutor(StepExecutor):
    """Completes only once every party is executing at the same time."""

    node_type = "barrier"

    def __init__(self, parties: int):
        self.parties = parties
        self.arrived = 0
        self.all_arrived = asyncio.Event()

    async def run(self, config, inputs, context):
        self.arrived += 1
        if self.arrived == self.parties:
            self.all_arrived.set()
        await self.all_arrived.wait()
        return StepResult(output={"node": context.node_id})


def set_field(field, value):
    return {"transformations": [{"field": field, "operation": "set", "value": value}]}


def approval_workflow():
    """Trigger -> condition on the payload amount, with true/false/unconditional branches."""
    nodes = [
        make_node("trigger", label="Start"),
        make_node("check", "condition", {"expression": "data.amount", "operator": "greater_than", "value": 100}),
        make_node("approve", "transform", set_field("status", "approved")),
        make_node("reject", "transform", set_field("status", "rejected")),
        make_node("after_reject", "delay", {"duration": 1}),
        make_node("audit", "transform", set_field("audited", True)),
    ]
    edges = [
        make_edge("trigger", "check"),
        make_edge("check", "approve", "true"),
        make_edge("check", "reject", "false"),
        make_edge("reject", "after_reject"),
        make_edge("check", "audit"),
    ]
    return nodes, edges


class TestExecutionRuns:
    """Test cases for complete runs."""

    @pytest.mark.asyncio
    async def test_linear_run(self, engine):
        nodes = [
            make_node("1"),
            make_node("2", "transform", set_field("greeting", "hello")),
            make_node("3", "delay", {"duration": 2, "unit": "seconds"}),
        ]
        order = engine.initialize(nodes, chain("1", "2", "3"))

        result = await engine.run({"user": "ada"})

        assert order == ["1", "2", "3"]
        assert result.state == RunState.COMPLETED
        assert engine.state == RunState.COMPLETED
        assert result.nodes_with_status(OutcomeStatus.SUCCEEDED) == ["1", "2", "3"]
        assert result.output_of("3")["greeting"] == "hello"
        assert result.output_of("3")["data"] == {"user": "ada"}
        assert result.completed_at >= result.started_at

    @pytest.mark.asyncio
    async def test_true_branch_prunes_false_branch(self, engine):
        """Test the unselected branch and its descendants are skipped."""
        engine.initialize(*approval_workflow())

        result = await engine.run({"amount": 150})

        assert result.outcomes["check"].branch.value == "true"
        assert result.outcomes["approve"].status == OutcomeStatus.SUCCEEDED
        assert result.outcomes["reject"].status == OutcomeStatus.SKIPPED
        assert result.outcomes["after_reject"].status == OutcomeStatus.SKIPPED
        assert result.outcomes["audit"].status == OutcomeStatus.SUCCEEDED
        assert result.output_of("approve")["status"] == "approved"
        assert result.state == RunState.COMPLETED

    @pytest.mark.asyncio
    async def test_false_branch(self, engine):
        engine.initialize(*approval_workflow())

        result = await engine.run({"amount": 20})

        assert result.outcomes["approve"].status == OutcomeStatus.SKIPPED
        assert result.outcomes["reject"].status == OutcomeStatus.SUCCEEDED
        assert result.outcomes["after_reject"].status == OutcomeStatus.SUCCEEDED
        assert result.output_of("after_reject")["status"] == "rejected"

    @pytest.mark.asyncio
    async def test_join_merges_inputs_by_source(self, engine):
        """Test a node with several active predecessors receives their outputs keyed by id."""
        nodes = [
            make_node("t"),
            make_node("a", "transform", set_field("x", 1)),
            make_node("b", "transform", set_field("y", 2)),
            make_node("join", "transform", set_field("z", 3)),
        ]
        edges = [make_edge("t", "a"), make_edge("t", "b"), make_edge("a", "join"), make_edge("b", "join")]
        engine.initialize(nodes, edges)

        result = await engine.run()

        merged = result.output_of("join")
        assert merged["a"]["x"] == 1
        assert merged["b"]["y"] == 2
        assert merged["z"] == 3

    @pytest.mark.asyncio
    async def test_independent_branches_run_concurrently(self, settings):
        barrier = BarrierExecutor(parties=2)
        engine = ExecutionEngine(config=settings)
        engine.registry.register(barrier)
        nodes = [make_node("t"), make_node("left", "barrier"), make_node("right", "barrier")]
        engine.initialize(nodes, [make_edge("t", "left"), make_edge("t", "right")])

        result = await engine.run()

        assert result.nodes_with_status(OutcomeStatus.SUCCEEDED) == ["t", "left", "right"]

    @pytest.mark.asyncio
    async def test_cycle_nodes_never_run(self, engine):
        nodes = [make_node("1"), make_node("2", "delay", {"duration": 1}), make_node("3", "delay", {"duration": 1})]
        edges = [make_edge("1", "2"), make_edge("2", "3"), make_edge("3", "2")]
        engine.initialize(nodes, edges)

        result = await engine.run()

        assert result.order == ["1"]
        assert list(result.outcomes) == ["1"]
        assert result.state == RunState.COMPLETED
        assert engine.report.unscheduled_nodes == ["2", "3"]

    @pytest.mark.asyncio
    async def test_empty_workflow(self, engine):
        assert engine.initialize([], []) == []

        result = await engine.run()

        assert result.state == RunState.COMPLETED
        assert result.outcomes == {}


class TestFailureHandling:
    """Test cases for node failures."""

    @pytest.mark.asyncio
    async def test_failure_skips_descendants_only(self, settings):
        """Test a failed request skips its descendants while unrelated branches finish."""
        def handler(request):
            return httpx.Response(404)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            engine = ExecutionEngine(config=settings, http_client=client)
            nodes = [
                make_node("t"),
                make_node("fetch", "http-request", {"url": "https://api.example.com/missing"}),
                make_node("notify", "transform", set_field("sent", True)),
                make_node("other", "transform", set_field("other", True)),
                make_node("join", "transform", set_field("joined", True)),
            ]
            edges = [
                make_edge("t", "fetch"),
                make_edge("fetch", "notify"),
                make_edge("t", "other"),
                make_edge("other", "join"),
                make_edge("fetch", "join"),
            ]
            engine.initialize(nodes, edges)

            result = await engine.run()

        assert result.state == RunState.COMPLETED
        assert result.outcomes["fetch"].status == OutcomeStatus.FAILED
        assert "404" in result.outcomes["fetch"].error
        assert result.outcomes["fetch"].error_details["details"]["status_code"] == 404
        assert result.outcomes["fetch"].error_details["category"] == "network"
        assert result.outcomes["fetch"].error_details["recoverable"] is False
        assert result.outcomes["notify"].status == OutcomeStatus.SKIPPED
        assert result.outcomes["join"].status == OutcomeStatus.SKIPPED
        assert result.outcomes["other"].status == OutcomeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_unknown_node_type_fails_node(self, engine):
        nodes = [make_node("t"), make_node("mail", "send-email"), make_node("after", "transform")]
        engine.initialize(nodes, chain("t", "mail", "after"))

        result = await engine.run()

        assert result.state == RunState.COMPLETED
        assert result.outcomes["mail"].status == OutcomeStatus.FAILED
        assert result.outcomes["mail"].error == "Unknown node type: send-email"
        assert result.outcomes["after"].status == OutcomeStatus.SKIPPED

    @pytest.mark.asyncio
    async def test_invalid_config_fails_node(self, engine):
        nodes = [make_node("t"), make_node("wait", "delay", {"duration": -5})]
        engine.initialize(nodes, chain("t", "wait"))

        result = await engine.run()

        assert result.outcomes["wait"].status == OutcomeStatus.FAILED
        assert "Invalid delay configuration" in result.outcomes["wait"].error

    @pytest.mark.asyncio
    async def test_node_timeout(self, settings):
        config = settings.model_copy(update={"node_timeout": 0.05, "max_delay_seconds": None})
        engine = ExecutionEngine(config=config)
        engine.initialize([make_node("t"), make_node("slow", "delay", {"duration": 5})], chain("t", "slow"))

        result = await engine.run()

        assert result.outcomes["slow"].status == OutcomeStatus.FAILED
        assert "exceeded" in result.outcomes["slow"].error


class TestLifecycle:
    """Test cases for engine state transitions."""

    @pytest.mark.asyncio
    async def test_run_requires_initialize(self, engine):
        assert engine.state == RunState.IDLE
        with pytest.raises(ExecutionEngineError):
            await engine.run()

    def test_controls_outside_a_run(self, engine):
        assert engine.cancel() is False
        assert engine.pause() is False
        assert engine.resume() is False
        assert engine.context == {}

    def test_reinitialize_replaces_order(self, engine):
        engine.initialize([make_node("a"), make_node("b", "delay")], chain("a", "b"))
        first_run = engine.run_id

        order = engine.initialize([make_node("x")], [])

        assert order == ["x"]
        assert engine.get_execution_order() == ["x"]
        assert engine.run_id != first_run
        assert list(engine.context) == ["x"]

    def test_invalid_snapshot(self, engine):
        with pytest.raises(ExecutionEngineError):
            engine.initialize([{"id": "1"}], [])

    @pytest.mark.asyncio
    async def test_cancel_aborts_in_flight_and_pending(self, settings):
        config = settings.model_copy(update={"node_timeout": None, "max_delay_seconds": None})
        running = asyncio.Event()

        def listener(entry):
            if entry.node_id == "wait" and entry.status == OutcomeStatus.RUNNING:
                running.set()

        engine = ExecutionEngine(config=config, listener=listener)
        nodes = [make_node("t"), make_node("wait", "delay", {"duration": 30}), make_node("after", "transform")]
        engine.initialize(nodes, chain("t", "wait", "after"))

        task = asyncio.create_task(engine.run())
        await asyncio.wait_for(running.wait(), 1)

        assert engine.cancel() is True
        result = await asyncio.wait_for(task, 1)

        assert result.state == RunState.ABORTED
        assert engine.state == RunState.ABORTED
        assert result.outcomes["t"].status == OutcomeStatus.SUCCEEDED
        assert result.outcomes["wait"].status == OutcomeStatus.ABORTED
        assert result.outcomes["after"].status == OutcomeStatus.ABORTED

    @pytest.mark.asyncio
    async def test_pause_holds_dispatch_until_resume(self, settings):
        gate = GateExecutor()
        engine = ExecutionEngine(config=settings)
        engine.registry.register(gate)
        engine.initialize([make_node("t"), make_node("g", "gate"), make_node("after", "transform")], chain("t", "g", "after"))

        task = asyncio.create_task(engine.run())
        await asyncio.wait_for(gate.started.wait(), 1)

        assert engine.pause() is True
        assert engine.state == RunState.PAUSED
        gate.release.set()
        await asyncio.sleep(0.05)

        assert engine.context["g"].status == OutcomeStatus.SUCCEEDED
        assert engine.context["after"].status == OutcomeStatus.PENDING

        assert engine.resume() is True
        result = await asyncio.wait_for(task, 1)

        assert result.state == RunState.COMPLETED
        assert result.outcomes["after"].status == OutcomeStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_concurrent_run_rejected(self, settings):
        gate = GateExecutor()
        engine = ExecutionEngine(config=settings)
        engine.registry.register(gate)
        engine.initialize([make_node("g", "gate")], [])

        task = asyncio.create_task(engine.run())
        await asyncio.wait_for(gate.started.wait(), 1)

        with pytest.raises(ExecutionEngineError):
            await engine.run()

        gate.release.set()
        result = await asyncio.wait_for(task, 1)
        assert result.state == RunState.COMPLETED

    @pytest.mark.asyncio
    async def test_reinitialize_abandons_active_run(self, settings):
        """Test a superseded run is aborted and cannot overwrite the new state."""
        gate = GateExecutor()
        engine = ExecutionEngine(config=settings)
        engine.registry.register(gate)
        engine.initialize([make_node("t"), make_node("g", "gate")], chain("t", "g"))

        task = asyncio.create_task(engine.run())
        await asyncio.wait_for(gate.started.wait(), 1)

        engine.initialize([make_node("fresh")], [])
        old_result = await asyncio.wait_for(task, 1)

        assert old_result.state == RunState.ABORTED
        assert old_result.outcomes["g"].status == OutcomeStatus.ABORTED
        assert engine.state == RunState.INITIALIZED

        new_result = await engine.run()
        assert new_result.state == RunState.COMPLETED
        assert list(new_result.outcomes) == ["fresh"]


class TestWorkflowSnapshots:
    """Test cases for reading workflows into the engine."""

    def canvas_workflow(self):
        nodes = [
            {"id": "1", "type": "manual-trigger", "position": {"x": 0, "y": 0},
             "data": {"label": "Start", "config": {}, "isValid": True}},
            {"id": "2", "type": "condition",
             "data": {"label": "Is VIP", "config": {"field": "data.vip", "operator": "is_true"}}},
            {"id": "3", "type": "transform",
             "data": {"label": "Tag", "config": set_field("tier", "gold")}},
        ]
        edges = [
            {"id": "e1", "source": "1", "target": "2"},
            {"id": "e2", "source": "2", "target": "3", "sourceHandle": "true"},
        ]
        return nodes, edges

    @pytest.mark.asyncio
    async def test_canvas_dicts(self, engine):
        engine.initialize(*self.canvas_workflow())

        result = await engine.run({"vip": True})

        assert result.output_of("3")["tier"] == "gold"
        assert engine.graph.node("2").label == "Is VIP"
        assert engine.graph.node("2").is_logic

    @pytest.mark.asyncio
    async def test_snapshot_isolated_from_later_mutation(self, engine):
        nodes, edges = self.canvas_workflow()
        engine.initialize(nodes, edges)

        nodes[2]["data"]["config"]["transformations"][0]["value"] = "tampered"
        edges.clear()

        result = await engine.run({"vip": True})

        assert result.output_of("3")["tier"] == "gold"

    @pytest.mark.asyncio
    async def test_provider_is_reread_on_start(self, settings):
        nodes, edges = self.canvas_workflow()
        store = SimpleNamespace(nodes=nodes, edges=edges)
        engine = ExecutionEngine(workflow=store, config=settings)

        first = await engine.start({"vip": False})
        assert first.outcomes["3"].status == OutcomeStatus.SKIPPED

        store.nodes = nodes + [{"id": "4", "type": "transform", "data": {"config": set_field("late", True)}}]
        store.edges = edges + [{"id": "e3", "source": "1", "target": "4"}]

        second = await engine.start({"vip": False})
        assert second.outcomes["4"].status == OutcomeStatus.SUCCEEDED
        assert second.run_id != first.run_id

    @pytest.mark.asyncio
    async def test_callable_provider(self, settings):
        engine = ExecutionEngine(workflow=lambda: ([make_node("only")], []), config=settings)

        result = await engine.start()

        assert result.order == ["only"]

    def test_no_provider_means_empty_graph(self, engine):
        assert engine.initialize() == []


class TestExecutionLog:
    """Test cases for execution log entries."""

    @pytest.mark.asyncio
    async def test_listener_sees_every_node(self, settings):
        entries = []
        engine = ExecutionEngine(config=settings, listener=entries.append)
        engine.initialize(*approval_workflow())

        result = await engine.run({"amount": 500})

        assert entries == result.logs
        terminal = {entry.node_id: entry.status for entry in entries if entry.status.is_terminal}
        assert terminal == {node_id: outcome.status for node_id, outcome in result.outcomes.items()}
        start = next(entry for entry in entries if entry.node_id == "trigger")
        assert start.node_name == "Start"
        assert all(entry.run_id == result.run_id for entry in entries)

    @pytest.mark.asyncio
    async def test_skip_reason_is_logged(self, engine):
        engine.initialize(*approval_workflow())

        result = await engine.run({"amount": 500})

        skipped = [entry for entry in result.logs if entry.node_id == "reject"]
        assert skipped[-1].status == OutcomeStatus.SKIPPED
        assert "branch" in skipped[-1].message


class TestInternalErrors:
    """Test cases for errors raised by the orchestrator itself."""

    @pytest.mark.asyncio
    async def test_internal_error_aborts_run(self, engine, monkeypatch):
        """Test an unexpected dispatch error leaves the engine aborted rather than running."""
        async def broken_drive(*args, **kwargs):
            raise RuntimeError("dispatch loop broke")

        monkeypatch.setattr(engine, "_drive", broken_drive)
        engine.initialize([make_node("t")], [])

        with pytest.raises(RuntimeError):
            await engine.run()

        assert engine.state == RunState.ABORTED
        with pytest.raises(ExecutionEngineError) as exc_info:
            await engine.run()
        assert "initialize()" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_scheduled_node_feeding_a_cycle(self, engine):
        """Test edges from scheduled nodes into a cycle are ignored during dispatch."""
        nodes = [
            make_node("t"),
            make_node("loop_a", "transform"),
            make_node("loop_b", "transform"),
            make_node("side", "transform", set_field("ok", True)),
        ]
        edges = [
            make_edge("t", "loop_a"),
            make_edge("loop_a", "loop_b"),
            make_edge("loop_b", "loop_a"),
            make_edge("t", "side"),
        ]
        engine.initialize(nodes, edges)

        result = await engine.run()

        assert result.state == RunState.COMPLETED
        assert result.order == ["t", "side"]
        assert result.output_of("side")["ok"] is True
        assert "loop_a" not in result.outcomes
