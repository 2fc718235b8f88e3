"""Tests for turning a cart into an order."""

import threading
from decimal import Decimal

import pytest

from app.data.models.checkout_recovery import CheckoutRecoveryModel
from app.data.models.order import OrderModel
from app.data.models.payment_attempt import PaymentAttemptModel
from app.data.models.reservation import ReservationModel
from app.domain.errors import (
    EmptyCart,
    InsufficientStock,
    PaymentDeclined,
    PostPaymentCommitFailure,
    ValidationError,
)
from app.services.checkout_service import CheckoutService
from app.services.payment_gateway import SimulatedGateway
from app.services.payment_service import PaymentAuthorizer
from factories import add_to_cart, cart_size, make_card, make_product, make_user, stock_of

ADDRESS = "1 Main St, Springfield"


@pytest.fixture()
def shop(db):
    make_user(db, 1)
    make_product(db, 1, "10.00", 5, name="Widget")
    make_product(db, 2, "5.00", 5, name="Gadget")
    return db


@pytest.fixture()
def service(shop, authorizer):
    return CheckoutService(shop, authorizer=authorizer)


class TestSuccessfulCheckout:
    def test_scenario(self, shop, session_factory, service, card):
        add_to_cart(shop, 1, 1, 2)
        add_to_cart(shop, 1, 2, 1)

        result = service.checkout(1, ADDRESS, card)

        order = result.order
        assert order.total_amount == Decimal("25.00")
        assert order.status == "pending"
        assert order.shipping_address == ADDRESS
        assert order.payment_reference == result.payment_reference
        assert result.payment_reference.startswith("sim_txn_")
        assert stock_of(session_factory, 1) == 3
        assert stock_of(session_factory, 2) == 4
        assert cart_size(session_factory, 1) == 0

    def test_total_matches_lines(self, shop, service, card):
        add_to_cart(shop, 1, 1, 3)
        add_to_cart(shop, 1, 2, 2)

        order = service.checkout(1, ADDRESS, card).order

        assert order.total_amount == sum(l.quantity * l.price_at_time for l in order.lines)
        assert [(l.product_id, l.quantity, l.price_at_time) for l in order.lines] == [
            (1, 3, Decimal("10.00")),
            (2, 2, Decimal("5.00")),
        ]

    def test_holds_become_committed(self, shop, session_factory, service, card):
        add_to_cart(shop, 1, 1, 2)

        order = service.checkout(1, ADDRESS, card).order

        session = session_factory()
        holds = session.query(ReservationModel).all()
        session.close()
        assert [(h.status, h.order_id, h.quantity) for h in holds] == [("committed", order.id, 2)]

    def test_price_is_captured_at_purchase(self, shop, service, card):
        add_to_cart(shop, 1, 1, 1)
        order = service.checkout(1, ADDRESS, card).order

        from app.data.models.product import ProductModel

        shop.get(ProductModel, 1).price = Decimal("99.00")
        shop.commit()
        shop.refresh(order)

        assert order.lines[0].price_at_time == Decimal("10.00")

    def test_payment_attempt_is_audited_masked(self, shop, session_factory, service, card):
        add_to_cart(shop, 1, 1, 1)
        result = service.checkout(1, ADDRESS, card)

        session = session_factory()
        attempt = session.query(PaymentAttemptModel).one()
        session.close()
        assert attempt.outcome == "approved"
        assert attempt.reference == result.payment_reference
        assert attempt.masked_card == "**** 0366"
        assert attempt.amount == Decimal("10.00")


class TestRejectedCheckout:
    def test_empty_cart(self, shop, service, card, gateway):
        with pytest.raises(EmptyCart):
            service.checkout(1, ADDRESS, card)
        assert gateway.calls == []

    def test_invalid_card_rejected_before_reservation(self, shop, session_factory, service, gateway):
        add_to_cart(shop, 1, 1, 2)

        with pytest.raises(ValidationError):
            service.checkout(1, ADDRESS, make_card("4532015112830367"))

        assert stock_of(session_factory, 1) == 5
        assert shop.query(ReservationModel).count() == 0
        assert gateway.calls == []

    def test_missing_address(self, shop, service, card):
        add_to_cart(shop, 1, 1, 1)
        with pytest.raises(ValidationError):
            service.checkout(1, "   ", card)

    def test_insufficient_stock_names_products_and_releases(self, shop, session_factory, service, card, gateway):
        make_product(shop, 3, "1.00", 1, name="Rare")
        add_to_cart(shop, 1, 1, 2)
        add_to_cart(shop, 1, 3, 2)

        with pytest.raises(InsufficientStock) as exc:
            service.checkout(1, ADDRESS, card)

        assert exc.value.products == ["Rare"]
        assert stock_of(session_factory, 1) == 5
        assert stock_of(session_factory, 3) == 1
        assert cart_size(session_factory, 1) == 2
        assert gateway.calls == []

    def test_declined_payment_leaves_state_unchanged(self, shop, session_factory, service, card, gateway):
        add_to_cart(shop, 1, 1, 2)
        add_to_cart(shop, 1, 2, 1)
        gateway.configure(should_succeed=False, failure_reason="Do not honor")

        with pytest.raises(PaymentDeclined) as exc:
            service.checkout(1, ADDRESS, card)

        assert exc.value.reason == "Do not honor"
        assert stock_of(session_factory, 1) == 5
        assert stock_of(session_factory, 2) == 5
        assert cart_size(session_factory, 1) == 2
        assert shop.query(OrderModel).count() == 0
        attempt = shop.query(PaymentAttemptModel).one()
        assert attempt.outcome == "declined"

    def test_declining_test_card(self, shop, session_factory, service):
        add_to_cart(shop, 1, 1, 1)

        with pytest.raises(PaymentDeclined, match="Insufficient funds"):
            service.checkout(1, ADDRESS, make_card("4000000000009995"))
        assert stock_of(session_factory, 1) == 5

    def test_gateway_timeout_releases_holds(self, shop, session_factory):
        add_to_cart(shop, 1, 1, 2)
        slow = SimulatedGateway(latency=0.5)
        service = CheckoutService(shop, authorizer=PaymentAuthorizer(slow, timeout=0.05))

        with pytest.raises(PaymentDeclined, match="timed out"):
            service.checkout(1, ADDRESS, make_card())

        assert stock_of(session_factory, 1) == 5
        assert cart_size(session_factory, 1) == 1

    def test_unexpected_gateway_error_releases_holds(self, shop, session_factory, gateway, authorizer, monkeypatch):
        add_to_cart(shop, 1, 1, 2)

        def boom(*args, **kwargs):
            raise KeyError("bad gateway payload")

        monkeypatch.setattr(gateway, "charge", boom)
        service = CheckoutService(shop, authorizer=authorizer)

        with pytest.raises(KeyError):
            service.checkout(1, ADDRESS, make_card())
        assert stock_of(session_factory, 1) == 5


class TestPostPaymentCommitFailure:
    def _fail_cart_clear(self, service, monkeypatch):
        def broken(user_id):
            raise RuntimeError("disk full")

        monkeypatch.setattr(service.cart_repo, "clear_cart", broken)

    def test_failure_keeps_payment_reference(self, shop, session_factory, service, card, monkeypatch):
        add_to_cart(shop, 1, 1, 2)
        self._fail_cart_clear(service, monkeypatch)

        with pytest.raises(PostPaymentCommitFailure) as exc:
            service.checkout(1, ADDRESS, card)

        err = exc.value
        assert err.status_code == 500
        assert err.payment_reference.startswith("sim_txn_")
        session = session_factory()
        recovery = session.get(CheckoutRecoveryModel, err.recovery_id)
        assert recovery.status == "open"
        assert recovery.payment_reference == err.payment_reference
        assert recovery.total_amount == Decimal("20.00")
        assert session.query(OrderModel).count() == 0
        session.close()
        # holds are kept for the retry, the sweeper is the backstop
        assert stock_of(session_factory, 1) == 3

    def test_retry_commit_does_not_charge_again(self, shop, session_factory, service, card, gateway, monkeypatch):
        add_to_cart(shop, 1, 1, 2)
        self._fail_cart_clear(service, monkeypatch)
        with pytest.raises(PostPaymentCommitFailure) as exc:
            service.checkout(1, ADDRESS, card)
        monkeypatch.undo()

        order = service.retry_commit(exc.value.recovery_id)

        assert len(gateway.calls) == 1
        assert order.payment_reference == exc.value.payment_reference
        assert order.total_amount == Decimal("20.00")
        assert stock_of(session_factory, 1) == 3
        assert cart_size(session_factory, 1) == 0
        session = session_factory()
        assert session.get(CheckoutRecoveryModel, exc.value.recovery_id).status == "resolved"
        session.close()

        # resolving again returns the same order
        assert service.retry_commit(exc.value.recovery_id).id == order.id

    def test_racing_retries_build_one_order(self, shop, session_factory, service, card, monkeypatch):
        add_to_cart(shop, 1, 1, 2)
        self._fail_cart_clear(service, monkeypatch)
        with pytest.raises(PostPaymentCommitFailure) as exc:
            service.checkout(1, ADDRESS, card)
        monkeypatch.undo()
        recovery_id = exc.value.recovery_id

        create_order = service.order_repo.create_order
        winner = {}

        def resolved_elsewhere_first(**kwargs):
            other = session_factory()
            winner["order_id"] = CheckoutService(other, authorizer=None).retry_commit(recovery_id).id
            other.close()
            return create_order(**kwargs)

        monkeypatch.setattr(service.order_repo, "create_order", resolved_elsewhere_first)

        order = service.retry_commit(recovery_id)

        assert order.id == winner["order_id"]
        assert shop.query(OrderModel).count() == 1
        assert stock_of(session_factory, 1) == 3

    def test_reconcile_open(self, shop, session_factory, service, card, monkeypatch):
        add_to_cart(shop, 1, 1, 1)
        self._fail_cart_clear(service, monkeypatch)
        with pytest.raises(PostPaymentCommitFailure):
            service.checkout(1, ADDRESS, card)
        monkeypatch.undo()

        reconciler = CheckoutService(shop, authorizer=None)
        assert reconciler.reconcile_open(max_attempts=5) == 1
        assert reconciler.reconcile_open(max_attempts=5) == 0
        assert shop.query(OrderModel).count() == 1


class TestConcurrentCheckout:
    def test_last_unit_goes_to_exactly_one_shopper(self, db, session_factory, authorizer):
        make_user(db, 1)
        make_user(db, 2)
        make_product(db, 1, "10.00", 1, name="Last one")
        add_to_cart(db, 1, 1, 1)
        add_to_cart(db, 2, 1, 1)

        barrier = threading.Barrier(2)
        outcomes = {}

        def shopper(user_id):
            session = session_factory()
            try:
                barrier.wait()
                CheckoutService(session, authorizer=authorizer).checkout(user_id, ADDRESS, make_card())
                outcomes[user_id] = "ok"
            except InsufficientStock:
                outcomes[user_id] = "insufficient"
            finally:
                session.close()

        threads = [threading.Thread(target=shopper, args=(uid,)) for uid in (1, 2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        assert sorted(outcomes.values()) == ["insufficient", "ok"]
        assert stock_of(session_factory, 1) == 0

    def test_many_shoppers_never_oversell(self, db, session_factory, authorizer):
        make_product(db, 1, "10.00", 3)
        for uid in range(1, 9):
            make_user(db, uid)
            add_to_cart(db, uid, 1, 1)

        results = []
        lock = threading.Lock()

        def shopper(user_id):
            session = session_factory()
            try:
                CheckoutService(session, authorizer=authorizer).checkout(user_id, ADDRESS, make_card())
                outcome = "ok"
            except InsufficientStock:
                outcome = "insufficient"
            finally:
                session.close()
            with lock:
                results.append(outcome)

        threads = [threading.Thread(target=shopper, args=(uid,)) for uid in range(1, 9)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert results.count("ok") == 3
        assert results.count("insufficient") == 5
        assert stock_of(session_factory, 1) == 0
