"""Branch-and-bound over the ``precedes`` ordering variables.

Each node is a partial fixing of the binary ``precedes[j,k]`` variables. A
node is processed in four steps:

1. propagate the fixings transitively (j<k and k<l imply j<l); an ordering
   cycle closes the node without an oracle call,
2. relax every free ``precedes`` to ``[0, 1]`` and solve the relaxation,
3. prune when infeasible or when the bound cannot beat the incumbent,
4. accept an integral solution as a candidate incumbent, or branch on a
   fractional variable (most fractional or first fractional, ties broken by
   canonical pair order).

The worklist is a priority queue keyed by bound (``best_bound``) or a stack
(``depth_first``). Node / time budgets and an external cancel event are
checked at every node boundary; stopping early keeps the incumbent and reports
``gap = incumbent - best remaining lower bound``.

With ``workers > 1`` a frontier is expanded first, then independent subtrees
are explored on a thread pool. Workers share only the incumbent (replaced
under a lock, strictly better wins) and the budget.
"""

from __future__ import annotations

import heapq
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, Iterator

from .exceptions import InfeasibleInstance, RelaxationFailure
from .formulation import Formulation
from .heuristics import best_dispatch_order
from .relaxation import RelaxationOracle

logger = logging.getLogger("smsched.search")

BEST_BOUND = "best_bound"
DEPTH_FIRST = "depth_first"
STRATEGIES = (BEST_BOUND, DEPTH_FIRST)

MOST_FRACTIONAL = "most_fractional"
FIRST_FRACTIONAL = "first_fractional"
BRANCHING_RULES = (MOST_FRACTIONAL, FIRST_FRACTIONAL)

OPTIMAL = "optimal"
NODE_LIMIT = "node_limit"
TIME_LIMIT = "time_limit"
CANCELLED = "cancelled"
INCOMPLETE = "incomplete"


@dataclass(slots=True)
class SearchParams:
    """Search configuration.

    Attributes:
        strategy: ``best_bound`` (priority queue) or ``depth_first`` (stack).
        branching: ``most_fractional`` or ``first_fractional``.
        node_limit: Maximum number of relaxations solved (None = unlimited).
        time_limit_ms: Wall-clock budget in milliseconds (None = unlimited).
        workers: Number of threads exploring subtrees.
        warm_start: Seed the incumbent from the best dispatch rule.
        propagate: Apply transitive closure of fixings at every node.
        integrality_tolerance: Distance from 0/1 still treated as integral.
        bound_tolerance: Slack used when comparing bounds with the incumbent.
        objective_step: Minimal improvement between integral objective
            values; ``None`` detects 1 for integral data and objective.
        trace_file: Optional path of a ``;``-separated per-node trace.
        log_every: Progress log period in nodes (0 disables).
    """

    strategy: str = BEST_BOUND
    branching: str = MOST_FRACTIONAL
    node_limit: int | None = None
    time_limit_ms: int | None = None
    workers: int = 1
    warm_start: bool = True
    propagate: bool = True
    integrality_tolerance: float = 1e-6
    bound_tolerance: float = 1e-6
    objective_step: float | None = None
    trace_file: str | None = None
    log_every: int = 1000

    def validate(self) -> None:
        if self.strategy not in STRATEGIES:
            raise ValueError(f"Unknown search strategy: {self.strategy}")
        if self.branching not in BRANCHING_RULES:
            raise ValueError(f"Unknown branching rule: {self.branching}")
        if self.workers < 1:
            raise ValueError("workers must be >= 1")
        if self.node_limit is not None and self.node_limit < 1:
            raise ValueError("node_limit must be >= 1")
        if self.time_limit_ms is not None and self.time_limit_ms <= 0:
            raise ValueError("time_limit_ms must be > 0")


@dataclass
class SearchNode:
    """Partial fixing of ``precedes`` plus the bound inherited from its parent."""

    node_id: int
    depth: int
    bound: float
    fixings: dict[str, int]


@dataclass
class SearchResult:
    """Outcome of a branch-and-bound run.

    Fields:
        status: ``optimal``, ``node_limit``, ``time_limit``, ``cancelled``
            or ``incomplete`` (worklist exhausted but some nodes failed).
        objective: Incumbent objective, None when no integral solution exists.
        lower_bound: Best proven lower bound on the optimum.
        gap: ``objective - lower_bound`` (0 when proven optimal).
        values: Incumbent variable assignment.
        nodes: Relaxations solved inside the tree.
        pruned: Nodes closed by bound, infeasibility or ordering cycles.
        failed: Nodes whose relaxation raised ``RelaxationFailure``.
        root_bound: Objective of the root relaxation.
        elapsed_ms: Wall-clock duration.
        incumbent_source: ``warm_start:<rule>`` or ``node:<id>``.
        history: ``(elapsed_ms, nodes, objective)`` on every incumbent update.
    """

    status: str
    objective: float | None
    lower_bound: float
    gap: float | None
    values: dict[str, float] | None
    nodes: int
    pruned: int
    failed: int
    root_bound: float
    elapsed_ms: int
    incumbent_source: str | None = None
    history: list[tuple[int, int, float]] = field(default_factory=list)

    @property
    def proven_optimal(self) -> bool:
        return self.status == OPTIMAL

    @property
    def relative_gap(self) -> float | None:
        if self.gap is None or self.objective is None:
            return None
        if self.gap == 0:
            return 0.0
        return self.gap / max(abs(self.objective), 1e-9)

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["relative_gap"] = self.relative_gap
        return d


class Incumbent:
    """Best integral solution found so far; the only state shared by workers."""

    def __init__(self, tolerance: float = 1e-6):
        self.tolerance = tolerance
        self.objective: float | None = None
        self.values: dict[str, float] | None = None
        self.source: str | None = None
        self.history: list[tuple[int, int, float]] = []
        self._lock = threading.Lock()

    def offer(
        self, objective: float, values: dict[str, float], source: str, elapsed_ms: int, nodes: int
    ) -> bool:
        """Replace the incumbent when ``objective`` is strictly better."""
        with self._lock:
            if self.objective is not None and objective >= self.objective - self.tolerance:
                return False
            self.objective = objective
            self.values = dict(values)
            self.source = source
            self.history.append((elapsed_ms, nodes, objective))
            return True


class _Budget:
    """Node counter, deadline and cancel flag shared by all workers."""

    def __init__(self, node_limit, time_limit_ms, cancel: threading.Event | None):
        self.node_limit = node_limit
        self.started = time.perf_counter()
        self.deadline = (
            self.started + time_limit_ms / 1000.0 if time_limit_ms is not None else None
        )
        self.cancel = cancel
        self.nodes = 0
        self.stop_reason: str | None = None
        self._lock = threading.Lock()

    def elapsed_ms(self) -> int:
        return int((time.perf_counter() - self.started) * 1000)

    def charge(self) -> int | None:
        """Reserve one node; returns its number, or None once the budget is spent."""
        with self._lock:
            if self.stop_reason is None:
                if self.cancel is not None and self.cancel.is_set():
                    self.stop_reason = CANCELLED
                elif self.node_limit is not None and self.nodes >= self.node_limit:
                    self.stop_reason = NODE_LIMIT
                elif self.deadline is not None and time.perf_counter() >= self.deadline:
                    self.stop_reason = TIME_LIMIT
            if self.stop_reason is not None:
                return None
            self.nodes += 1
            return self.nodes


class _Worklist:
    """Open nodes: a bound-keyed heap or a plain stack."""

    def __init__(self, strategy: str):
        self.strategy = strategy
        self._items: list = []
        self._seq = 0

    def __len__(self) -> int:
        return len(self._items)

    def push(self, node: SearchNode) -> None:
        if self.strategy == BEST_BOUND:
            heapq.heappush(self._items, (node.bound, self._seq, node))
            self._seq += 1
        else:
            self._items.append(node)

    def push_children(self, children: list[SearchNode]) -> None:
        """Push children so that the first one is explored first."""
        if self.strategy == BEST_BOUND:
            for child in children:
                self.push(child)
        else:
            for child in reversed(children):
                self.push(child)

    def pop(self) -> SearchNode:
        if self.strategy == BEST_BOUND:
            return heapq.heappop(self._items)[2]
        return self._items.pop()

    def drain(self) -> list[SearchNode]:
        if self.strategy == BEST_BOUND:
            nodes = [item[2] for item in sorted(self._items)]
        else:
            nodes = list(reversed(self._items))
        self._items = []
        return nodes


@contextmanager
def _open_trace(path: str | None) -> Iterator[Any]:
    trace = None
    if path:
        try:
            trace = open(path, "w", encoding="utf-8")
            trace.write("node;depth;bound;incumbent;event\n")
        except OSError as e:
            logger.warning("Failed to open trace file %s: %s", path, e)
            trace = None
    try:
        yield trace
    finally:
        if trace is not None:
            trace.close()


class _Search:
    def __init__(
        self,
        formulation: Formulation,
        oracle: RelaxationOracle,
        params: SearchParams,
        cancel: threading.Event | None,
    ):
        self.formulation = formulation
        self.oracle = oracle
        self.params = params
        self.constraints = formulation.constraints
        self.objective = formulation.objective_coeffs
        self.objective_constant = formulation.objective_constant
        self.incumbent = Incumbent(params.bound_tolerance)
        self.budget = _Budget(params.node_limit, params.time_limit_ms, cancel)
        instance = formulation.instance
        # (variable name, index of j, index of k) in canonical pair order
        self.pairs = [
            (name, instance.index_of(j), instance.index_of(k))
            for (j, k), name in formulation.precedes_vars.items()
        ]
        self.n = len(instance)
        if params.objective_step is not None:
            self.step = params.objective_step
        elif instance.is_integral and formulation.objective.integral:
            self.step = 1.0
        else:
            self.step = 0.0
        self.pruned = 0
        self.failed_bounds: list[float] = []
        self.next_id = 1
        self._stats_lock = threading.Lock()
        self._trace = None

    # -- bookkeeping -------------------------------------------------------
    def _new_id(self) -> int:
        with self._stats_lock:
            node_id = self.next_id
            self.next_id += 1
            return node_id

    def _prune(self, node: SearchNode, bound: float | None, event: str) -> None:
        with self._stats_lock:
            self.pruned += 1
        self._log_trace(node, bound, event)

    def _log_trace(self, node: SearchNode, bound: float | None, event: str) -> None:
        if self._trace is None:
            return
        incumbent = self.incumbent.objective
        line = (
            f"{node.node_id};{node.depth};{'' if bound is None else f'{bound:.6g}'};"
            f"{'' if incumbent is None else f'{incumbent:.6g}'};{event}\n"
        )
        with self._stats_lock:
            self._trace.write(line)

    def can_improve(self, bound: float) -> bool:
        best = self.incumbent.objective
        if best is None:
            return True
        tol = self.params.bound_tolerance
        if self.step > 0:
            return bound <= best - self.step + tol
        return bound < best - tol

    # -- node processing ---------------------------------------------------
    def propagate(self, fixings: dict[str, int]) -> dict[str, int] | None:
        """Transitive closure of the fixed orderings; None on a cycle."""
        if not fixings:
            return {}
        before = [[False] * self.n for _ in range(self.n)]
        for name, a, b in self.pairs:
            if name in fixings:
                if fixings[name]:
                    before[a][b] = True
                else:
                    before[b][a] = True
        for m in range(self.n):
            row_m = before[m]
            for a in range(self.n):
                if before[a][m]:
                    row_a = before[a]
                    for b in range(self.n):
                        if row_m[b]:
                            row_a[b] = True
        if any(before[a][a] for a in range(self.n)):
            return None
        closed = dict(fixings)
        for name, a, b in self.pairs:
            if before[a][b]:
                closed[name] = 1
            elif before[b][a]:
                closed[name] = 0
        return closed

    def select_branch(self, values: dict[str, float]) -> str | None:
        tol = self.params.integrality_tolerance
        chosen = None
        best_score = None
        for name, _, _ in self.pairs:
            v = values[name]
            if abs(v - round(v)) <= tol:
                continue
            if self.params.branching == FIRST_FRACTIONAL:
                return name
            score = abs(v - 0.5)
            if best_score is None or score < best_score:
                chosen, best_score = name, score
        return chosen

    def relax(self, fixings: dict[str, int]):
        return self.oracle.solve_relaxation(
            self.formulation.bounds(fixings),
            self.constraints,
            self.objective,
            self.objective_constant,
        )

    def expand(self, node: SearchNode, is_root: bool = False) -> list[SearchNode]:
        """Process one node and return its children (empty when closed)."""
        fixings = self.propagate(node.fixings) if self.params.propagate else node.fixings
        if fixings is None:
            self._prune(node, None, "cycle")
            return []
        try:
            result = self.relax(fixings)
        except RelaxationFailure as e:
            if is_root:
                raise
            logger.warning(
                "[bnb] relaxation failed at node %d depth=%d: %s", node.node_id, node.depth, e
            )
            with self._stats_lock:
                self.failed_bounds.append(node.bound)
            self._log_trace(node, None, "failed")
            return []
        if not result.feasible:
            if is_root:
                raise InfeasibleInstance("Root relaxation is infeasible: no valid schedule exists")
            self._prune(node, None, "infeasible")
            return []
        bound = result.objective
        if is_root:
            self.root_bound = bound
        if not self.can_improve(bound):
            self._prune(node, bound, "bound")
            return []
        var = self.select_branch(result.values)
        if var is None:
            self._accept(node, bound, result.values)
            return []
        value = result.values[var]
        first = 1 if value >= 0.5 else 0
        children = []
        for fixed in (first, 1 - first):
            child_fixings = dict(fixings)
            child_fixings[var] = fixed
            children.append(SearchNode(self._new_id(), node.depth + 1, bound, child_fixings))
        self._log_trace(node, bound, f"branch {var}")
        return children

    def _accept(self, node: SearchNode, bound: float, values: dict[str, float]) -> None:
        clean = dict(values)
        for name, _, _ in self.pairs:
            clean[name] = float(round(clean[name]))
        accepted = self.incumbent.offer(
            bound, clean, f"node:{node.node_id}", self.budget.elapsed_ms(), self.budget.nodes
        )
        self._log_trace(node, bound, "incumbent" if accepted else "integral")
        if accepted:
            logger.info(
                "[bnb] new incumbent %.6g at node %d depth=%d", bound, node.node_id, node.depth
            )

    def explore(self, worklist: _Worklist) -> list[SearchNode]:
        """Run the worklist until it empties or the budget stops it.

        Returns:
            Nodes left open (non-empty only when the budget stopped the run).
        """
        log_every = self.params.log_every
        while worklist:
            node = worklist.pop()
            if not self.can_improve(node.bound):
                self._prune(node, node.bound, "bound")
                continue
            count = self.budget.charge()
            if count is None:
                worklist.push(node)
                break
            worklist.push_children(self.expand(node))
            if log_every and count % log_every == 0:
                logger.info(
                    "[bnb] nodes=%d open=%d incumbent=%s pruned=%d",
                    count,
                    len(worklist),
                    self.incumbent.objective,
                    self.pruned,
                )
        return worklist.drain()

    # -- driver --------------------------------------------------------------
    def warm_start(self) -> None:
        instance = self.formulation.instance
        order, value, rule = best_dispatch_order(instance, self.formulation.objective)
        fixings = self.formulation.fixings_from_order(order)
        try:
            result = self.relax(fixings)
        except RelaxationFailure as e:
            logger.warning("[bnb] warm start relaxation failed (%s): %s", rule, e)
            return
        if not result.feasible:
            logger.warning("[bnb] warm start order from %s is infeasible", rule)
            return
        values = dict(result.values)
        values.update({name: float(v) for name, v in fixings.items()})
        self.incumbent.offer(
            result.objective, values, f"warm_start:{rule}", self.budget.elapsed_ms(), 0
        )
        logger.info(
            "[bnb] warm start rule=%s dispatch=%.6g relaxation=%.6g", rule, value, result.objective
        )

    def run(self) -> SearchResult:
        params = self.params
        f = self.formulation
        logger.info(
            "[bnb] start jobs=%d binaries=%d constraints=%d strategy=%s workers=%d oracle=%s",
            len(f.instance),
            len(f.precedes_vars),
            len(f.constraints),
            params.strategy,
            params.workers,
            getattr(self.oracle, "name", type(self.oracle).__name__),
        )
        self.root_bound = float("-inf")
        with _open_trace(params.trace_file) as trace:
            self._trace = trace
            if params.warm_start:
                self.warm_start()
            root = SearchNode(0, 0, float("-inf"), {})
            open_nodes: list[SearchNode] = []
            if self.budget.charge() is None:
                open_nodes = [root]
            else:
                worklist = _Worklist(params.strategy)
                worklist.push_children(self.expand(root, is_root=True))
                if params.workers > 1:
                    open_nodes = self._explore_parallel(worklist)
                else:
                    open_nodes = self.explore(worklist)
            self._trace = None
        return self._result(open_nodes)

    def _explore_parallel(self, worklist: _Worklist) -> list[SearchNode]:
        frontier_size = self.params.workers * 2
        # Grow a frontier sequentially, then hand each subtree to the pool.
        while worklist and len(worklist) < frontier_size:
            node = worklist.pop()
            if not self.can_improve(node.bound):
                self._prune(node, node.bound, "bound")
                continue
            if self.budget.charge() is None:
                worklist.push(node)
                return worklist.drain()
            worklist.push_children(self.expand(node))
        subtrees = worklist.drain()
        logger.info("[bnb] exploring %d subtrees on %d workers", len(subtrees), self.params.workers)

        def run_subtree(node: SearchNode) -> list[SearchNode]:
            local = _Worklist(self.params.strategy)
            local.push(node)
            return self.explore(local)

        open_nodes: list[SearchNode] = []
        with ThreadPoolExecutor(max_workers=self.params.workers) as pool:
            for leftover in pool.map(run_subtree, subtrees):
                open_nodes.extend(leftover)
        return open_nodes

    def _result(self, open_nodes: list[SearchNode]) -> SearchResult:
        best = self.incumbent.objective
        pending = [node.bound for node in open_nodes] + self.failed_bounds
        if self.budget.stop_reason is not None and open_nodes:
            status = self.budget.stop_reason
        elif self.failed_bounds:
            status = INCOMPLETE
        else:
            status = OPTIMAL
        if status == OPTIMAL:
            lower = best if best is not None else self.root_bound
        else:
            lower = min(pending) if pending else self.root_bound
            lower = max(lower, self.root_bound)
            if best is not None:
                lower = min(lower, best)
        gap = None if best is None else max(0.0, best - lower)
        if status == OPTIMAL and best is None:
            # every subtree closed without an integral point
            raise InfeasibleInstance("Search exhausted without a feasible schedule")
        result = SearchResult(
            status=status,
            objective=best,
            lower_bound=lower,
            gap=gap,
            values=self.incumbent.values,
            nodes=self.budget.nodes,
            pruned=self.pruned,
            failed=len(self.failed_bounds),
            root_bound=self.root_bound,
            elapsed_ms=self.budget.elapsed_ms(),
            incumbent_source=self.incumbent.source,
            history=list(self.incumbent.history),
        )
        logger.info(
            "[bnb] done status=%s objective=%s lower=%s gap=%s nodes=%d pruned=%d failed=%d %dms",
            result.status,
            result.objective,
            result.lower_bound,
            result.gap,
            result.nodes,
            result.pruned,
            result.failed,
            result.elapsed_ms,
        )
        return result


def branch_and_bound(
    formulation: Formulation,
    oracle: RelaxationOracle,
    params: SearchParams | None = None,
    cancel: threading.Event | None = None,
) -> SearchResult:
    """Search the ordering variables of ``formulation`` for an optimal schedule.

    Args:
        formulation: Output of ``build_formulation``.
        oracle: Relaxation backend used for every bound.
        params: Search configuration (defaults when omitted).
        cancel: Optional event; once set the search stops at the next node
            boundary and reports its incumbent and gap.

    Returns:
        SearchResult with the incumbent assignment in ``values``.

    Raises:
        InfeasibleInstance: The root relaxation is infeasible.
        RelaxationFailure: The root relaxation failed.
    """
    if params is None:
        params = SearchParams()
    params.validate()
    return _Search(formulation, oracle, params, cancel).run()

