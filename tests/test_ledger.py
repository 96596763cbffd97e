"""
Tests for Ledger Layer
======================

Liability creation, proofs, finalization and economics.
"""

import pytest

from turtlesim_liability.context import content_hash
from turtlesim_liability.ledger import (
    AlreadyFinalized,
    BadProof,
    DecodeError,
    EconomicsError,
    EventKind,
    InvalidParameter,
    Keypair,
    LiabilityLedger,
    SignedLiability,
    TokenEscrow,
    agreement_payload,
    create_economics,
    report_payload,
    verify_signature,
)

OBJECTIVE = content_hash(b'{"shape":"square"}')
REPORT = content_hash(b'{"reached":4}')


@pytest.fixture
def trader():
    return Keypair.from_name("trader")


@pytest.fixture
def worker():
    return Keypair.from_name("worker")


def create(ledger, trader, worker, cost=20, objective=OBJECTIVE):
    payload = agreement_payload(objective, cost)
    return ledger.create(
        technics=objective,
        economics=cost,
        promisee=trader.account_id,
        promisee_proof=trader.sign(payload),
        promisor=worker.account_id,
        promisor_proof=worker.sign(payload),
    )


def assert_nothing_stored(ledger):
    """A refused create leaves no trace in the ledger."""
    assert ledger.latest_index == 0
    assert ledger.liability_of(1) == b""
    assert ledger.get_liability(1) is None
    assert ledger.events() == []


class TestKeys:
    """Test node identities and signatures."""

    def test_from_name_is_deterministic(self):
        """The same node name always gives the same account."""
        assert Keypair.from_name("trader").account_id == Keypair.from_name("trader").account_id
        assert Keypair.from_name("trader").account_id != Keypair.from_name("worker").account_id

    def test_sign_and_verify(self, trader):
        signature = trader.sign(b"hello")
        assert verify_signature(trader.account_id, b"hello", signature)
        assert not verify_signature(trader.account_id, b"hellO", signature)

    def test_wrong_account_fails(self, trader, worker):
        signature = trader.sign(b"hello")
        assert not verify_signature(worker.account_id, b"hello", signature)

    def test_malformed_input_fails_quietly(self, trader):
        """Garbage keys and signatures are a failed check, not an exception."""
        assert not verify_signature("not-hex", b"hello", "00")
        assert not verify_signature(trader.account_id, b"hello", "zz")

    def test_seed_length(self):
        with pytest.raises(ValueError):
            Keypair.from_seed(b"short")


class TestCreate:
    """Test liability creation."""

    def test_first_index_is_one(self, trader, worker):
        ledger = LiabilityLedger()
        assert ledger.latest_index == 0
        assert create(ledger, trader, worker) == 1
        assert ledger.latest_index == 1

    def test_indices_increase(self, trader, worker):
        ledger = LiabilityLedger()
        assert create(ledger, trader, worker, cost=20) == 1
        assert create(ledger, trader, worker, cost=21) == 2

    def test_stores_parameters(self, trader, worker):
        ledger = LiabilityLedger()
        index = create(ledger, trader, worker, cost=18)

        liability = ledger.get_liability(index)
        assert liability == SignedLiability(
            technics=OBJECTIVE,
            economics=18,
            promisee=trader.account_id,
            promisor=worker.account_id,
        )
        assert ledger.liability_of(index) == liability.encode()
        assert not ledger.is_finalized(index)

    def test_emits_event(self, trader, worker):
        ledger = LiabilityLedger()
        seen = []
        ledger.subscribe(seen.append)
        index = create(ledger, trader, worker)

        assert [e.kind for e in seen] == [EventKind.NEW_LIABILITY]
        assert seen[0].index == index

    def test_bad_promisee_proof(self, trader, worker):
        ledger = LiabilityLedger()
        payload = agreement_payload(OBJECTIVE, 20)
        with pytest.raises(BadProof, match="bad promisee proof"):
            ledger.create(
                OBJECTIVE, 20,
                trader.account_id, worker.sign(payload),
                worker.account_id, worker.sign(payload),
            )
        assert_nothing_stored(ledger)

    def test_bad_promisor_proof(self, trader, worker):
        """A proof over a different cost does not verify."""
        ledger = LiabilityLedger()
        with pytest.raises(BadProof, match="bad promisor proof"):
            ledger.create(
                OBJECTIVE, 20,
                trader.account_id, trader.sign(agreement_payload(OBJECTIVE, 20)),
                worker.account_id, worker.sign(agreement_payload(OBJECTIVE, 19)),
            )
        assert_nothing_stored(ledger)

    def test_objective_must_be_content_hash(self, trader, worker):
        ledger = LiabilityLedger()
        with pytest.raises(InvalidParameter):
            create(ledger, trader, worker, objective="draw a square")
        assert_nothing_stored(ledger)

    def test_cost_must_be_integer(self, trader, worker):
        ledger = LiabilityLedger()
        with pytest.raises(InvalidParameter):
            ledger.create(OBJECTIVE, -1, trader.account_id, "", worker.account_id, "")
        assert_nothing_stored(ledger)

    def test_same_party_rejected(self, trader):
        ledger = LiabilityLedger()
        proof = trader.sign(agreement_payload(OBJECTIVE, 20))
        with pytest.raises(InvalidParameter):
            ledger.create(OBJECTIVE, 20, trader.account_id, proof, trader.account_id, proof)
        assert_nothing_stored(ledger)

    def test_refused_create_does_not_consume_index(self, trader, worker):
        ledger = LiabilityLedger()
        with pytest.raises(BadProof):
            ledger.create(
                OBJECTIVE, 20,
                trader.account_id, trader.sign(agreement_payload(OBJECTIVE, 20)),
                worker.account_id, "",
            )
        assert create(ledger, trader, worker) == 1


class TestFinalize:
    """Test report submission."""

    def test_finalize(self, trader, worker):
        ledger = LiabilityLedger()
        index = create(ledger, trader, worker)
        ledger.finalize(index, REPORT, worker.sign(report_payload(index, REPORT)))

        assert ledger.is_finalized(index)
        assert ledger.get_report(index) == {"report": REPORT, "success": True}
        assert [e.kind for e in ledger.events(index)] == [EventKind.NEW_LIABILITY, EventKind.NEW_REPORT]

    def test_finalize_twice(self, trader, worker):
        ledger = LiabilityLedger()
        index = create(ledger, trader, worker)
        proof = worker.sign(report_payload(index, REPORT))
        ledger.finalize(index, REPORT, proof)

        with pytest.raises(AlreadyFinalized, match="already finalized"):
            ledger.finalize(index, REPORT, proof)

    def test_unknown_index(self, worker):
        ledger = LiabilityLedger()
        with pytest.raises(DecodeError, match="unable decode liability params"):
            ledger.finalize(7, REPORT, worker.sign(report_payload(7, REPORT)))

    def test_report_signed_by_promisee_rejected(self, trader, worker):
        """Only the promisor may report."""
        ledger = LiabilityLedger()
        index = create(ledger, trader, worker)
        with pytest.raises(BadProof, match="bad report proof"):
            ledger.finalize(index, REPORT, trader.sign(report_payload(index, REPORT)))
        assert not ledger.is_finalized(index)
        assert ledger.report_of(index) == b""

    def test_report_proof_bound_to_index(self, trader, worker):
        """A report proof for one liability cannot finalize another."""
        ledger = LiabilityLedger()
        first = create(ledger, trader, worker, cost=20)
        second = create(ledger, trader, worker, cost=21)
        proof = worker.sign(report_payload(first, REPORT))
        with pytest.raises(BadProof):
            ledger.finalize(second, REPORT, proof)

    def test_report_must_be_content_hash(self, trader, worker):
        ledger = LiabilityLedger()
        index = create(ledger, trader, worker)
        with pytest.raises(InvalidParameter):
            ledger.finalize(index, "done", worker.sign(report_payload(index, "done")))

    def test_failing_subscriber_does_not_break_ledger(self, trader, worker):
        ledger = LiabilityLedger()

        def broken(event):
            raise RuntimeError("boom")

        ledger.subscribe(broken)
        index = create(ledger, trader, worker)
        assert index == 1


class TestEconomics:
    """Test token escrow."""

    def test_escrow_then_pay_promisor(self, trader, worker):
        economics = TokenEscrow({trader.account_id: 50})
        ledger = LiabilityLedger(economics=economics)
        index = create(ledger, trader, worker, cost=20)

        assert economics.balance_of(trader.account_id) == 30
        assert economics.escrowed == 20

        ledger.finalize(index, REPORT, worker.sign(report_payload(index, REPORT)))
        assert economics.balance_of(worker.account_id) == 20
        assert economics.escrowed == 0

    def test_failed_report_refunds_promisee(self, trader, worker):
        economics = TokenEscrow({trader.account_id: 50})
        ledger = LiabilityLedger(economics=economics)
        index = create(ledger, trader, worker, cost=20)
        ledger.finalize(index, REPORT, worker.sign(report_payload(index, REPORT)), success=False)

        assert economics.balance_of(trader.account_id) == 50
        assert economics.balance_of(worker.account_id) == 0
        assert ledger.get_report(index)["success"] is False

    def test_insufficient_balance(self, trader, worker):
        economics = TokenEscrow({trader.account_id: 5})
        ledger = LiabilityLedger(economics=economics)
        with pytest.raises(EconomicsError, match="insufficient balance"):
            create(ledger, trader, worker, cost=20)
        assert_nothing_stored(ledger)
        assert economics.balance_of(trader.account_id) == 5

    def test_create_economics(self):
        assert create_economics("communism").name == "communism"
        assert create_economics("tokens", {"a": 1}).balance_of("a") == 1
        with pytest.raises(ValueError):
            create_economics("barter")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
