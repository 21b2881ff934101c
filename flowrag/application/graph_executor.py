"""
Graph execution: depth-first traversal from every root, each node run at most once.

A run owns its visited set and state; the executor itself keeps no traversal state,
so concurrent runs over different stores never interfere.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Set

import structlog
from pydantic import ValidationError
from structlog.contextvars import bound_contextvars

from flowrag.application.graph_store import GraphStore
from flowrag.application.handlers.base import HandlerResult, RunContext
from flowrag.application.handlers.registry import HandlerRegistry
from flowrag.core.settings import settings
from flowrag.domain.exceptions import GraphCycleError, HandlerError, RunInterruptedError
from flowrag.domain.graph.topology import find_cycle
from flowrag.domain.graph.types import Node, NodeStatus
from flowrag.infrastructure.observability.timing import elapsed_ms, perf_now, remaining_seconds

logger = structlog.get_logger(__name__)


class RunState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class NodeRunRecord:
    node_id: str
    kind: str
    status: NodeStatus
    error: Optional[str] = None
    duration_ms: float = 0.0


@dataclass
class RunReport:
    run_id: str
    state: RunState = RunState.IDLE
    visit_order: List[str] = field(default_factory=list)
    records: Dict[str, NodeRunRecord] = field(default_factory=dict)
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def failed_nodes(self) -> List[str]:
        return [node_id for node_id, record in self.records.items() if record.status == NodeStatus.ERROR]

    @property
    def error_count(self) -> int:
        return len(self.failed_nodes)


class _GraphRun:
    def __init__(
        self,
        store: GraphStore,
        registry: HandlerRegistry,
        *,
        reject_cycles: bool,
        deadline_seconds: Optional[float],
        cancel_event: asyncio.Event,
    ):
        self.store = store
        self.registry = registry
        self.reject_cycles = reject_cycles
        self.deadline = perf_now() + deadline_seconds if deadline_seconds else None
        self.cancel_event = cancel_event
        self.visited: Set[str] = set()
        self.report = RunReport(run_id=uuid.uuid4().hex)
        self.context = RunContext(run_id=self.report.run_id, store=store, cancel_event=cancel_event)

    @property
    def state(self) -> RunState:
        return self.report.state

    async def execute(self) -> RunReport:
        started = perf_now()
        self.report.state = RunState.RUNNING
        with bound_contextvars(run_id=self.report.run_id):
            try:
                self._prepare()
                for root in self._roots():
                    await self._traverse(root)
                self.report.state = RunState.SUCCEEDED
            except (GraphCycleError, RunInterruptedError) as exc:
                self.report.state = RunState.FAILED
                self.report.error = exc.message
            except asyncio.CancelledError:
                self.report.state = RunState.FAILED
                self.report.error = "Run cancelled"
                raise
            finally:
                self.report.duration_ms = elapsed_ms(started)
                logger.info(
                    "graph_run_finished",
                    state=self.report.state.value,
                    visited=len(self.report.visit_order),
                    errors=self.report.error_count,
                    duration_ms=self.report.duration_ms,
                )
        return self.report

    def _prepare(self) -> None:
        nodes = self.store.nodes()
        if self.reject_cycles:
            cycle = find_cycle([node.id for node in nodes], self.store.edges())
            if cycle is not None:
                logger.warning("graph_run_rejected_cycle", cycle=cycle)
                raise GraphCycleError(f"Graph contains a cycle: {' -> '.join(cycle)}", cycle=cycle)
        for node in nodes:
            if node.data.status != NodeStatus.IDLE or node.data.error:
                self.store.update_node_data(node.id, {"status": NodeStatus.IDLE, "error": None})

    def _roots(self) -> List[str]:
        return [node.id for node in self.store.nodes() if not self.store.neighbors(node.id).inputs]

    async def _traverse(self, root: str) -> None:
        stack = [root]
        while stack:
            node_id = stack.pop()
            if node_id in self.visited:
                continue
            node = self.store.get_node(node_id)
            if node is None:
                continue
            self.visited.add(node_id)
            result = await self._run_node(node)
            stack.extend(reversed(self._followed_outputs(node_id, result)))

    def _followed_outputs(self, node_id: str, result: HandlerResult) -> List[str]:
        active = result.active_handles
        targets: List[str] = []
        for edge in self.store.edges_from(node_id):
            followed = active is None or edge.source_handle is None or edge.source_handle in active
            if followed and edge.target not in targets:
                targets.append(edge.target)
        return targets

    def _check_interrupted(self) -> None:
        if self.cancel_event.is_set():
            raise RunInterruptedError("Run cancelled", reason="cancelled")
        if self._deadline_passed():
            raise RunInterruptedError("Run deadline exceeded", reason="deadline")

    def _deadline_passed(self) -> bool:
        return self.deadline is not None and remaining_seconds(self.deadline) == 0

    async def _run_node(self, node: Node) -> HandlerResult:
        self._check_interrupted()
        self.report.visit_order.append(node.id)
        self.store.update_node_data(node.id, {"status": NodeStatus.PROCESSING, "error": None})
        started = perf_now()

        handler = self.registry.get(node.kind)
        inputs = self.context.upstream(node.id)
        try:
            if handler is None:
                raise HandlerError(f"No handler registered for node kind '{node.kind.value}'")
            result = await asyncio.wait_for(
                handler.handle(node, inputs, self.context),
                timeout=remaining_seconds(self.deadline),
            )
        except asyncio.CancelledError:
            self._record(node, NodeStatus.ERROR, "Run cancelled", started)
            raise
        except Exception as exc:
            if isinstance(exc, asyncio.TimeoutError) and self._deadline_passed():
                self._record(node, NodeStatus.ERROR, "Run deadline exceeded", started)
                raise RunInterruptedError("Run deadline exceeded", reason="deadline") from exc
            message = getattr(exc, "message", None) or str(exc) or type(exc).__name__
            if isinstance(exc, HandlerError):
                logger.info("graph_node_failed", node_id=node.id, kind=node.kind.value, error=message)
            else:
                logger.warning(
                    "graph_node_crashed", node_id=node.id, kind=node.kind.value, error=message, exc_info=True
                )
            self._record(node, NodeStatus.ERROR, message, started)
            return HandlerResult(status=NodeStatus.ERROR, error=message)

        try:
            self.store.update_node_data(
                node.id, {**result.data, "status": result.status, "error": result.error}
            )
        except ValidationError as exc:
            message = f"Handler produced invalid node data: {exc.error_count()} validation error(s)"
            logger.warning("graph_node_invalid_result", node_id=node.id, errors=exc.errors())
            self._record(node, NodeStatus.ERROR, message, started)
            return HandlerResult(status=NodeStatus.ERROR, error=message)

        self._record(node, result.status, result.error, started, persist=False)
        return result

    def _record(
        self,
        node: Node,
        status: NodeStatus,
        error: Optional[str],
        started: float,
        persist: bool = True,
    ) -> None:
        if persist:
            self.store.update_node_data(node.id, {"status": status, "error": error})
        self.report.records[node.id] = NodeRunRecord(
            node_id=node.id,
            kind=node.kind.value,
            status=status,
            error=error,
            duration_ms=elapsed_ms(started),
        )


class GraphExecutor:
    def __init__(
        self,
        store: GraphStore,
        registry: HandlerRegistry,
        *,
        reject_cycles: Optional[bool] = None,
        deadline_seconds: Optional[float] = None,
    ):
        self.store = store
        self.registry = registry
        self.reject_cycles = settings.EXECUTOR_REJECT_CYCLES if reject_cycles is None else reject_cycles
        self.deadline_seconds = deadline_seconds or settings.EXECUTOR_DEADLINE_SECONDS
        self._active: Set[_GraphRun] = set()
        self._last_state = RunState.IDLE

    @property
    def state(self) -> RunState:
        """State of the most recent run (or of the running one)."""
        for run in self._active:
            return run.state
        return self._last_state

    async def run(
        self,
        *,
        deadline_seconds: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> RunReport:
        graph_run = _GraphRun(
            self.store,
            self.registry,
            reject_cycles=self.reject_cycles,
            deadline_seconds=deadline_seconds or self.deadline_seconds,
            cancel_event=cancel_event or asyncio.Event(),
        )
        self._active.add(graph_run)
        try:
            return await graph_run.execute()
        finally:
            self._active.discard(graph_run)
            self._last_state = graph_run.state

    def cancel(self) -> None:
        """Asks every active run to stop before its next node."""
        for graph_run in self._active:
            graph_run.cancel_event.set()
