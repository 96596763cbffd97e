"""
Integration Test: Full Liability Run
====================================

Tests the complete system from first demand to finalized report, both
through the orchestration graph and as nodes on the topic bus.
"""

from pathlib import Path

import pytest

from turtlesim_liability.context import ContentStore, ModelCatalog, is_content_hash
from turtlesim_liability.fsm import FailureReason, LiabilityState
from turtlesim_liability.ledger import Keypair, LiabilityLedger, TokenEscrow
from turtlesim_liability.orchestration import LiabilityMarket, run_liability
from turtlesim_liability.protocol import Report, create_envelope
from turtlesim_liability.runtime import (
    LiabilityRuntime,
    Lighthouse,
    RuntimeConfig,
    TraderNode,
    WorkerNode,
    install,
    load_launch,
    trader_main,
    worker_main,
)
from turtlesim_liability.runtime import runner
from turtlesim_liability.runtime.runner import default_launch_file, main, run_batch
from turtlesim_liability.transport import (
    DEMAND_TOPIC,
    FINALIZED_TOPIC,
    LIABILITY_TOPIC,
    OFFER_TOPIC,
    RESULT_TOPIC,
    TopicBus,
)
from turtlesim_liability.turtlesim import Task, TurtleSim

ROOT = Path(__file__).parent.parent


class TestGraphRun:
    """Test liabilities driven by the LangGraph orchestration."""

    def test_immediate_match(self):
        """Worker accepts the opening demand when it meets its floor."""
        market = LiabilityMarket()
        result = run_liability(Task.square(), market=market)

        assert result["finalized"] is True
        assert result["cost"] == 18
        assert result["turns"] == 1
        assert result["success"] is True
        assert market.ledger.is_finalized(result["liability_index"])
        assert market.store.get_json(result["objective"]) == Task.square().to_dict()
        assert is_content_hash(result["result"])

    def test_negotiated_match(self):
        """Bids rise and asks fall until they meet."""
        result = run_liability(Task.triangle(size=1.0), budget=30, min_cost=25, asking_cost=40)

        assert result["finalized"] is True
        assert 25 <= result["cost"] <= 30
        assert result["turns"] > 1

    def test_trader_rejects_when_out_of_budget(self):
        result = run_liability(Task.square(), budget=10, min_cost=15, asking_cost=40)

        assert result["finalized"] is False
        assert result["liability_index"] is None
        assert result["failure_reason"].startswith("Trader rejected")

    def test_max_turns(self):
        result = run_liability(Task.square(), budget=20, min_cost=22, asking_cost=40, max_turns=1)

        assert result["finalized"] is False
        assert result["failure_reason"] == "Max turns exceeded"

    def test_report_recorded_in_ledger(self):
        market = LiabilityMarket()
        result = run_liability(Task.square(), market=market)
        report = market.ledger.get_report(result["liability_index"])

        assert report == {"report": result["result"], "success": True}

    def test_token_escrow_pays_worker(self):
        trader, worker = Keypair.from_name("trader"), Keypair.from_name("worker")
        economics = TokenEscrow({trader.account_id: 100})
        market = LiabilityMarket(ledger=LiabilityLedger(economics=economics))
        result = run_liability(Task.square(), market=market)

        assert economics.balance_of(worker.account_id) == result["cost"]
        assert economics.balance_of(trader.account_id) == 100 - result["cost"]

    def test_insufficient_balance_fails_contract(self):
        market = LiabilityMarket(ledger=LiabilityLedger(economics=TokenEscrow()))
        result = run_liability(Task.square(), market=market)

        assert result["finalized"] is False
        assert "insufficient balance" in result["failure_reason"]


@pytest.fixture
def network():
    """A bus with a lighthouse, ledger, content store and simulator."""
    bus = TopicBus()
    ledger = LiabilityLedger()
    store = ContentStore()
    sim = TurtleSim()
    lighthouse = Lighthouse(bus, ledger)
    return bus, ledger, store, sim, lighthouse


class TestNodeRun:
    """Test liabilities driven by trader, worker and lighthouse nodes."""

    def test_full_lifecycle(self, network):
        bus, ledger, store, sim, lighthouse = network
        worker = WorkerNode(bus, store, sim, min_cost=15, asking_cost=40, catalog=ModelCatalog())
        trader = TraderNode(bus, store, Task.square(), budget=30)

        session_id = trader.start()

        assert trader.fsm.get_state() == LiabilityState.FINALIZED
        assert trader.fsm.context.agreed_cost == 18
        assert worker.session_state(session_id) == LiabilityState.FINALIZED
        assert ledger.latest_index == 1
        assert ledger.is_finalized(1)
        assert lighthouse.session_of(1) == session_id

        topics = [e.topic for e in bus.session_log(session_id)]
        assert topics.index(LIABILITY_TOPIC) < topics.index(RESULT_TOPIC) < topics.index(FINALIZED_TOPIC)

    def test_negotiation_over_several_turns(self, network):
        bus, ledger, store, sim, _ = network
        WorkerNode(bus, store, sim, min_cost=25, asking_cost=40)
        trader = TraderNode(bus, store, Task.square(), budget=30)
        trader.start()

        assert trader.fsm.get_state() == LiabilityState.FINALIZED
        assert trader.fsm.context.agreed_cost == 30
        assert trader.fsm.context.turn_count == 3

    def test_trader_rejects(self, network):
        bus, ledger, store, sim, _ = network
        WorkerNode(bus, store, sim, min_cost=15, asking_cost=40)
        trader = TraderNode(bus, store, Task.square(), budget=10)
        session_id = trader.start()

        assert trader.fsm.context.failure_reason == FailureReason.REJECTED_BY_TRADER
        assert ledger.latest_index == 0
        assert bus.session_log(session_id)[-1].payload.type == "reject"

    def test_trader_runs_out_of_turns(self, network):
        bus, ledger, store, sim, _ = network
        worker = WorkerNode(bus, store, sim, min_cost=22, asking_cost=40)
        trader = TraderNode(bus, store, Task.square(), budget=20, max_turns=2)
        session_id = trader.start()

        assert trader.fsm.context.failure_reason == FailureReason.MAX_TURNS_EXCEEDED
        assert worker.session_state(session_id) == LiabilityState.FAILED

    def test_no_worker(self, network):
        """Without a worker the demand goes unanswered."""
        bus, ledger, store, _, _ = network
        trader = TraderNode(bus, store, Task.square(), budget=30)
        trader.start()

        assert trader.fsm.get_state() == LiabilityState.NEGOTIATING
        assert not trader.done

    def test_worker_ignores_other_models(self, network):
        bus, ledger, store, sim, _ = network
        worker = WorkerNode(bus, store, sim, min_cost=15, model="drone")
        trader = TraderNode(bus, store, Task.square(), budget=30)
        trader.start()

        assert worker.served == 0

    def test_replayed_report_refused(self, network):
        """A second report for a finalized liability is refused by the ledger."""
        bus, ledger, store, sim, _ = network
        WorkerNode(bus, store, sim, min_cost=15)
        trader = TraderNode(bus, store, Task.square(), budget=30)
        session_id = trader.start()

        assert len(bus.history(FINALIZED_TOPIC, session_id)) == 1

        envelope = bus.history(RESULT_TOPIC, session_id)[0]
        report: Report = envelope.payload
        bus.publish(envelope)

        assert len(bus.history(FINALIZED_TOPIC, session_id)) == 1
        assert ledger.get_report(report.index)["report"] == report.result

    def test_two_traders_one_worker(self, network):
        bus, ledger, store, sim, _ = network
        worker = WorkerNode(bus, store, sim, min_cost=15)
        first = TraderNode(bus, store, Task.square(), budget=30, name="trader_a")
        second = TraderNode(bus, store, Task.triangle(), budget=40, name="trader_b")

        first.start()
        second.start()

        assert first.fsm.context.liability_index == 1
        assert second.fsm.context.liability_index == 2
        assert worker.served == 2
        assert ledger.get_liability(2).promisee == Keypair.from_name("trader_b").account_id

    def test_worker_serves_repeated_task(self, network):
        """Two traders ask for the same task at the same cost; both get a liability."""
        bus, ledger, store, sim, _ = network
        worker = WorkerNode(bus, store, sim, min_cost=15)
        first = TraderNode(bus, store, Task.square(1.0), budget=30, name="trader_a")
        second = TraderNode(bus, store, Task.square(1.0), budget=30, name="trader_b")

        first.start()
        second.start()

        assert first.fsm.get_state() == LiabilityState.FINALIZED
        assert second.fsm.get_state() == LiabilityState.FINALIZED
        assert ledger.latest_index == 2
        assert worker.served == 2

    def test_replayed_orders_refused(self, network):
        """Publishing a matched pair again into a new session creates nothing."""
        bus, ledger, store, sim, _ = network
        WorkerNode(bus, store, sim, min_cost=15)
        trader = TraderNode(bus, store, Task.square(), budget=30)
        session_id = trader.start()
        assert ledger.latest_index == 1

        demand = bus.history(DEMAND_TOPIC, session_id)[-1]
        offer = bus.history(OFFER_TOPIC, session_id)[-1]
        bus.publish(create_envelope(demand.sender, DEMAND_TOPIC, "replay", demand.payload))
        bus.publish(create_envelope(offer.sender, OFFER_TOPIC, "replay", offer.payload))

        assert ledger.latest_index == 1

    def test_trader_cannot_start_twice(self, network):
        bus, ledger, store, sim, _ = network
        WorkerNode(bus, store, sim, min_cost=15)
        trader = TraderNode(bus, store, Task.square(), budget=30)
        session_id = trader.start()

        with pytest.raises(RuntimeError, match="already started"):
            trader.start()
        assert trader.session_id == session_id
        assert len(bus.history(DEMAND_TOPIC)) == 1


class TestRuntime:
    """Test the runtime shell and script entry points."""

    @pytest.fixture
    def runtime(self):
        rt = LiabilityRuntime(RuntimeConfig(verbose=False))
        rt.initialize()
        return rt

    def test_run_packaged_launch_files(self, runtime):
        sessions = runtime.run_nodes([load_launch(ROOT / "launch" / "trader.launch")])

        assert len(sessions) == 1
        assert sessions[0].finalized
        assert sessions[0].cost == 18
        assert sessions[0].success

    def test_worker_launch_alone(self, runtime, capsys):
        sessions = runtime.run_nodes([load_launch(ROOT / "launch" / "worker.launch")])
        assert sessions == []

    def test_demo_session(self, runtime):
        session = runtime.run_session(runtime.create_session())
        assert session.finalized
        assert session.duration_ms() >= 0

    def test_batch(self, runtime):
        sessions = run_batch(runtime, 5)
        assert len(sessions) == 5
        assert runtime.market.ledger.latest_index == sum(1 for s in sessions if s.liability_index)

    def test_token_config(self, tmp_path):
        path = tmp_path / "tokens.yaml"
        path.write_text("ledger:\n  economics: tokens\n  balances:\n    trader: 100\n")
        runtime = LiabilityRuntime(RuntimeConfig(config_path=str(path), verbose=False))
        runtime.initialize()
        session = runtime.run_session(runtime.create_session())

        economics = runtime.market.ledger.economics
        assert economics.balance_of(Keypair.from_name("worker").account_id) == session.cost

    def test_cli_demo(self, capsys):
        assert main(["--mode", "demo", "--quiet"]) == 0
        assert "Finalized: Yes" in capsys.readouterr().out

    def test_trader_script_entry_point(self, capsys):
        assert trader_main(["--quiet"]) == 0
        assert "NODE SUMMARY" in capsys.readouterr().out

    def test_worker_script_without_trader_fails(self, capsys):
        """worker.launch on its own has no demand to serve."""
        assert worker_main([]) == 1
        out = capsys.readouterr().out
        assert "no demand to serve" in out
        assert "worker served 0 demand(s)" in out

    def test_worker_script_serves_trader_from_other_launch(self, tmp_path, capsys):
        path = tmp_path / "traders.launch"
        path.write_text("""<launch>
  <node pkg="turtlesim_liability" type="trader_node" name="remote_trader">
    <param name="budget" value="30" type="int"/>
  </node>
</launch>
""")
        assert worker_main(["--launch", str(path)]) == 0
        out = capsys.readouterr().out
        assert "worker served 1 demand(s)" in out
        assert "Finalized: Yes" in out

    def test_installed_layout(self, monkeypatch, tmp_path, capsys):
        """Outside a source checkout the launch files come from share/."""
        install(ROOT, tmp_path / "install")
        monkeypatch.setattr(runner, "SOURCE_ROOT", tmp_path / "site-packages")
        monkeypatch.setenv("ROS_PACKAGE_PATH", "")
        monkeypatch.setenv("CMAKE_PREFIX_PATH", str(tmp_path / "install"))

        launch = tmp_path / "install" / "share" / "turtlesim_liability" / "launch" / "trader.launch"
        assert default_launch_file("trader.launch") == str(launch.resolve())
        assert trader_main(["--quiet"]) == 0
        assert "Finalized: Yes" in capsys.readouterr().out

    def test_missing_launch_file_exit_code(self, tmp_path, capsys):
        assert main(["--mode", "nodes", "--launch", str(tmp_path / "nope.launch")]) == 2
        assert "launch file not found" in capsys.readouterr().out


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
