"""
Runtime - The Shell
===================

This is THE SHELL - the entrypoint that wraps the entire system.

It provides:
- Programmatic access (for testing, batch runs)
- The CLI
- The `trader_node` / `worker_node` script entry points

Run methods:
    1. Installed scripts (what CMakeLists.txt installs):
       trader_node                 # trader.launch, includes the worker
       worker_node                 # worker.launch plus any --launch files

    2. Programmatic:
       python -m turtlesim_liability.runtime.runner --mode demo
       python -m turtlesim_liability.runtime.runner --mode batch --count 20
       python -m turtlesim_liability.runtime.runner --mode nodes --launch launch/trader.launch
"""

import argparse
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..context import ContentStore, ModelCatalog
from ..coordination import MatchingPolicy
from ..fsm import LiabilityState
from ..evaluation import LiabilityTracer
from ..ledger import Keypair, LiabilityLedger, create_economics
from ..orchestration import LiabilityMarket, run_liability
from ..transport import TopicBus
from ..turtlesim import ControllerConfig, Task, TurtleSim
from .config import Config, load_config
from .launch import LaunchDescription, LaunchError, NodeSpec, find_package, load_launch
from .nodes import Lighthouse, TraderNode, WorkerNode, failure_of

PACKAGE_NAME = "turtlesim_liability"
SOURCE_ROOT = Path(__file__).resolve().parents[2]

TRADER_TYPE = "trader_node"
WORKER_TYPE = "worker_node"


# ============================================================================
# Runtime Configuration
# ============================================================================

@dataclass
class RuntimeConfig:
    """Runtime configuration (how to run, not what to trade)."""
    mode: str = "demo"              # demo, batch, nodes
    config_path: Optional[str] = None
    launch_paths: List[str] = field(default_factory=list)
    verbose: bool = True
    batch_count: int = 10
    seed: int = 0


# ============================================================================
# Session (one liability)
# ============================================================================

@dataclass
class Session:
    """A single liability, from first demand to outcome."""
    session_id: str = field(default_factory=lambda: str(uuid4()))

    # Configuration
    budget: int = 30
    min_cost: int = 15
    asking_cost: int = 40
    max_turns: int = 10
    task: Dict[str, Any] = field(default_factory=dict)

    # Results
    finalized: bool = False
    liability_index: Optional[int] = None
    cost: Optional[int] = None
    turns_taken: int = 0
    success: bool = False
    failure_reason: Optional[str] = None

    # Timing
    start_time: Optional[float] = None
    end_time: Optional[float] = None

    def duration_ms(self) -> float:
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time) * 1000
        return 0.0


# ============================================================================
# Runtime
# ============================================================================

class LiabilityRuntime:
    """
    Owns one market (ledger, content store, simulator) and runs
    liabilities against it, either through the graph or as bus nodes.
    """

    def __init__(self, config: RuntimeConfig):
        self.runtime_config = config
        self.system_config: Optional[Config] = None
        self.market: Optional[LiabilityMarket] = None
        self.tracer = LiabilityTracer()
        self._initialized = False

    def initialize(self) -> None:
        """Initialize the runtime."""
        if self._initialized:
            return

        self._say("[Runtime] Initializing...")
        self.system_config = load_config(self.runtime_config.config_path)
        self.market = self.create_market()
        self._say(f"[Runtime] Ledger ready ({self.system_config.ledger.economics})")
        if self.tracer.remote_enabled:
            self._say(f"[Runtime] LangSmith tracing to {self.tracer.project_name}")

        self._initialized = True
        self._say("[Runtime] Ready\n")

    def _say(self, text: str) -> None:
        if self.runtime_config.verbose:
            print(text)

    def create_market(self) -> LiabilityMarket:
        """A fresh market built from the system configuration."""
        config = self.system_config or Config.default()
        # Balances are configured by node name, the ledger keys them by account
        balances = {
            Keypair.from_name(name).account_id: amount
            for name, amount in config.ledger.balances.items()
        }
        sim = config.turtlesim
        return LiabilityMarket(
            ledger=LiabilityLedger(economics=create_economics(config.ledger.economics, balances)),
            store=ContentStore(),
            sim=TurtleSim(),
            catalog=ModelCatalog(),
            controller=ControllerConfig(
                dt=sim.dt,
                max_steps=sim.max_steps,
                linear_gain=sim.linear_gain,
                angular_gain=sim.angular_gain,
            ),
            turtle=sim.turtle,
        )

    def create_session(self, **kwargs) -> Session:
        """Create a new session, defaults from the system configuration."""
        market = self.system_config.market
        return Session(
            budget=kwargs.get("budget", market.budget),
            min_cost=kwargs.get("min_cost", market.min_cost),
            asking_cost=kwargs.get("asking_cost", market.asking_cost),
            max_turns=kwargs.get("max_turns", self.system_config.limits.max_turns),
            task=kwargs.get("task", dict(market.task)),
        )

    def run_session(self, session: Session) -> Session:
        """Run one liability through the orchestration graph."""
        session.start_time = time.time()

        if self.runtime_config.verbose:
            print("[Liability] Starting")
            print(f"  Task: {session.task}")
            print(f"  Trader budget: {session.budget}")
            print(f"  Worker min: {session.min_cost}")
            print(f"  Worker asking: {session.asking_cost}")
            print()

        self.tracer.start_trace(session.session_id)
        result = run_liability(
            Task.from_spec(session.task),
            market=self.market,
            model=self.system_config.market.model,
            budget=session.budget,
            min_cost=session.min_cost,
            asking_cost=session.asking_cost,
            max_turns=session.max_turns,
            verbose=self.runtime_config.verbose,
            tracer=self.tracer,
            session_id=session.session_id,
        )
        self.tracer.end_trace(session.session_id)

        session.finalized = result["finalized"]
        session.liability_index = result["liability_index"]
        session.cost = result["cost"]
        session.turns_taken = result["turns"]
        session.success = result["success"]
        session.failure_reason = result["failure_reason"]
        session.end_time = time.time()
        return session

    def run_nodes(self, descriptions: List[LaunchDescription]) -> List[Session]:
        """
        Bring up every node the launch descriptions declare on one bus
        and run each trader's liability to its end.
        """
        bus = TopicBus()
        market = self.market
        lighthouse = Lighthouse(bus, market.ledger, MatchingPolicy(require_cost_progress=False))

        specs = [spec for description in descriptions for spec in description.nodes]
        workers = [self._make_worker(bus, spec) for spec in specs if spec.type == WORKER_TYPE]
        traders = [self._make_trader(bus, spec) for spec in specs if spec.type == TRADER_TYPE]
        for spec in specs:
            if spec.type not in (TRADER_TYPE, WORKER_TYPE):
                print(f"[Runtime] Warning: unknown node type {spec.type} ({spec.name}), skipped")

        self._say(
            f"[Runtime] Nodes up: {len(traders)} trader(s), {len(workers)} worker(s), "
            f"lighthouse {lighthouse.name}"
        )
        if not traders:
            print("[Runtime] No trader_node declared: no demand to serve "
                  "(pass a launch file with a trader via --launch)")

        sessions = []
        for trader in traders:
            session = Session(
                budget=trader.strategy.budget,
                max_turns=trader.max_turns,
                task=trader.task.to_dict(),
            )
            session.start_time = time.time()
            # Delivery is synchronous: once start() returns the session has
            # gone as far as the running nodes can take it.
            trader.start(session.session_id)

            context = trader.fsm.context
            session.finalized = trader.fsm.get_state() == LiabilityState.FINALIZED
            session.liability_index = context.liability_index
            session.cost = context.agreed_cost
            session.turns_taken = context.turn_count
            if session.finalized:
                report = market.ledger.get_report(context.liability_index)
                session.success = bool(report and report["success"])
            session.failure_reason = failure_of(trader.fsm)
            if not trader.done:
                session.failure_reason = "no worker answered"
            session.end_time = time.time()
            sessions.append(session)

            if self.runtime_config.verbose:
                self._print_bus_log(bus, session.session_id)

        for worker in workers:
            self._say(f"[Runtime] {worker.name} served {worker.served} demand(s)")
        return sessions

    def _print_bus_log(self, bus: TopicBus, session_id: str) -> None:
        for envelope in bus.session_log(session_id):
            payload = envelope.payload
            cost = getattr(payload, "cost", None)
            detail = f" cost={cost}" if cost is not None else ""
            print(f"  #{envelope.seq} [{envelope.sender}] {envelope.topic} {payload.type}{detail}")
        print()

    def _make_trader(self, bus: TopicBus, spec: NodeSpec) -> TraderNode:
        market_config = self.system_config.market
        params = spec.params
        return TraderNode(
            bus,
            self.market.store,
            Task.from_spec(params.get("task", market_config.task)),
            budget=int(params.get("budget", market_config.budget)),
            model=str(params.get("model", market_config.model)),
            max_turns=int(params.get("max_turns", self.system_config.limits.max_turns)),
            name=spec.name,
        )

    def _make_worker(self, bus: TopicBus, spec: NodeSpec) -> WorkerNode:
        market_config = self.system_config.market
        params = spec.params
        return WorkerNode(
            bus,
            self.market.store,
            self.market.sim,
            min_cost=int(params.get("min_cost", market_config.min_cost)),
            asking_cost=int(params.get("asking_cost", market_config.asking_cost)),
            model=str(params.get("model", market_config.model)),
            max_turns=int(params.get("max_turns", self.system_config.limits.max_turns)),
            catalog=self.market.catalog,
            controller=self.market.controller,
            turtle=str(params.get("turtle", self.market.turtle)),
            name=spec.name,
        )

    def shutdown(self) -> None:
        """Clean shutdown."""
        self._say("[Runtime] Shutting down...")
        self._initialized = False


# ============================================================================
# CLI Entrypoints
# ============================================================================

def print_summary(title: str, session: Session) -> None:
    print("\n" + "=" * 50)
    print(title)
    print("=" * 50)
    print(f"Session: {session.session_id}")
    print(f"Finalized: {'Yes' if session.finalized else 'No'}")
    if session.liability_index is not None:
        print(f"Liability: #{session.liability_index}")
    print(f"Cost: {session.cost}" if session.cost is not None else "Cost: N/A")
    print(f"Task succeeded: {'Yes' if session.success else 'No'}")
    if session.failure_reason:
        print(f"Failure: {session.failure_reason}")
    print(f"Turns: {session.turns_taken}")
    print(f"Duration: {session.duration_ms():.2f}ms")
    print("=" * 50)


def run_demo(runtime: LiabilityRuntime) -> Session:
    """Run a single demo liability through the graph."""
    print("=" * 50)
    print("DEMO MODE")
    print("=" * 50 + "\n")

    session = runtime.create_session()
    runtime.run_session(session)
    print_summary("SUMMARY", session)
    return session


def run_batch(runtime: LiabilityRuntime, count: int) -> List[Session]:
    """Run many liabilities with varying trader budgets."""
    print("=" * 50)
    print(f"BATCH MODE ({count} liabilities)")
    print("=" * 50 + "\n")

    rng = random.Random(runtime.runtime_config.seed)
    market = runtime.system_config.market
    results = []

    verbose = runtime.runtime_config.verbose
    runtime.runtime_config.verbose = False
    try:
        for i in range(count):
            budget = rng.randint(max(0, market.min_cost // 2), market.asking_cost)
            session = runtime.create_session(budget=budget)
            runtime.run_session(session)
            results.append(session)

            if verbose:
                status = "✓" if session.finalized else "✗"
                cost = session.cost if session.cost is not None else "N/A"
                print(f"  [{i+1}] {status} budget={budget} cost={cost} ({session.turns_taken} turns)")
    finally:
        runtime.runtime_config.verbose = verbose

    finalized = [s for s in results if s.finalized]
    avg_cost = sum(s.cost for s in finalized) / len(finalized) if finalized else 0
    avg_turns = sum(s.turns_taken for s in results) / len(results) if results else 0

    print("\n" + "=" * 50)
    print("BATCH SUMMARY")
    print("=" * 50)
    print(f"Total: {count}")
    print(f"Finalized: {100 * len(finalized) / count:.1f}%" if count else "Finalized: N/A")
    print(f"Avg Cost: {avg_cost:.1f}" if finalized else "Avg Cost: N/A")
    print(f"Avg Turns: {avg_turns:.1f}")
    print(f"Ledger: {runtime.market.ledger.latest_index} liabilities")
    print("=" * 50)
    return results


def run_launch(runtime: LiabilityRuntime, launch_paths: List[str]) -> List[Session]:
    """Bring up the nodes of one or more launch files."""
    print("=" * 50)
    print("NODES MODE")
    print("=" * 50 + "\n")

    descriptions = [load_launch(path) for path in launch_paths]
    for description in descriptions:
        names = ", ".join(spec.name for spec in description.nodes) or "no nodes"
        runtime._say(f"[Runtime] {description.path.name}: {names}")

    sessions = runtime.run_nodes(descriptions)
    for session in sessions:
        print_summary("NODE SUMMARY", session)
    return sessions


def default_launch_file(name: str) -> str:
    """
    A launch file shipped with the package.

    Found through $(find turtlesim_liability): the source checkout first,
    then ROS_PACKAGE_PATH, then share/turtlesim_liability under each
    install prefix (catkin install space or the pip data files).
    """
    return str(find_package(PACKAGE_NAME, hint=SOURCE_ROOT) / "launch" / name)


def build_parser(description: str, default_launch: Optional[str] = None) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=description,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m turtlesim_liability.runtime.runner --mode demo
  python -m turtlesim_liability.runtime.runner --mode batch --count 20
  python -m turtlesim_liability.runtime.runner --mode nodes --launch launch/trader.launch
""",
    )
    parser.add_argument("--mode", choices=["demo", "batch", "nodes"], default="nodes" if default_launch else "demo",
                        help="demo=one graph run, batch=evaluation, nodes=launch files over the bus")
    parser.add_argument("--count", type=int, default=10, help="Batch count")
    parser.add_argument("--seed", type=int, default=0, help="Batch random seed")
    parser.add_argument("--config", type=str, help="Config file path")
    parser.add_argument("--launch", action="append", default=[],
                        help="Launch file (repeatable)")
    parser.add_argument("--quiet", action="store_true")
    return parser


def main(argv: Optional[List[str]] = None, description: str = "Turtlesim Liability Market",
         default_launch: Optional[str] = None, always_launch: bool = False) -> int:
    """
    CLI entrypoint. Returns a process exit code.

    default_launch names a launch file shipped with the package. Nodes mode
    runs it when no --launch is given, or together with them when
    always_launch is set.

    Exit codes: 0 all sessions finalized, 1 a session did not finalize or
    there was none to run, 2 a launch file could not be found or parsed.
    """
    parser = build_parser(description, default_launch)
    args = parser.parse_args(argv)

    config = RuntimeConfig(
        mode=args.mode,
        config_path=args.config,
        launch_paths=list(args.launch),
        verbose=not args.quiet,
        batch_count=args.count,
        seed=args.seed,
    )
    runtime = LiabilityRuntime(config)

    try:
        if args.mode == "nodes" and (always_launch or not config.launch_paths):
            config.launch_paths.insert(0, default_launch_file(default_launch or "trader.launch"))

        runtime.initialize()

        if args.mode == "demo":
            sessions = [run_demo(runtime)]
        elif args.mode == "batch":
            sessions = run_batch(runtime, args.count)
        else:
            sessions = run_launch(runtime, config.launch_paths)
    except LaunchError as e:
        print(f"[Runtime] Error: {e}")
        return 2
    finally:
        runtime.shutdown()

    if args.mode == "batch":
        return 0
    if not sessions:
        return 1
    return 0 if all(s.finalized for s in sessions) else 1


def trader_main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the installed trader_node script."""
    return main(argv, "Trader node", "trader.launch")


def worker_main(argv: Optional[List[str]] = None) -> int:
    """
    Entry point of the installed worker_node script.

    worker.launch always comes up; traders whose demands it serves are
    declared in further --launch files.
    """
    return main(argv, "Worker node", "worker.launch", always_launch=True)


if __name__ == "__main__":
    raise SystemExit(main())
