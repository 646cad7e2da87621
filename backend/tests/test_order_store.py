# Overview: Pytest coverage for the Order Store (creation, queries, archival, item status).

import pytest

from comanda.extensions import db
from comanda.models import Order, OrderItem, TargetType, OrderStatus, OrderSource, ItemStatus
from comanda.services.order_store import (
    HistoryEntry, LineItem, order_store, orders_changed, parse_target,
)
from comanda.validation import ValidationError, ConflictError, NotFoundError


def _line(product, quantity=1, status=None):
    return LineItem.from_product(product, quantity, status)


class TestParseTarget:

    def test_counter_defaults_number(self, app):
        ttype, number = parse_target("counter", None)
        assert ttype is TargetType.COUNTER
        assert number == "B"

    def test_table_requires_number(self, app):
        with pytest.raises(ValidationError):
            parse_target("table", "  ")

    def test_unknown_type_rejected(self, app):
        with pytest.raises(ValidationError):
            parse_target("boat", "1")

    def test_number_is_stripped_string(self, app):
        assert parse_target("room", 12) == (TargetType.ROOM, "12")


class TestCreateOrder:

    def test_create_assigns_id_timestamp_and_history(self, db_session, company_a, burger):
        order = order_store.create_order(
            company_id=company_a.id,
            target_type="table",
            target_number="5",
            items=[_line(burger, 2)],
        )

        assert order.id is not None
        assert order.timestamp > 0
        assert order.status is OrderStatus.PENDING
        assert order.source is OrderSource.INTERNAL
        assert order.is_archived is False
        assert [e.status for e in order.history] == ["Pedido criado"]
        assert order.total_cents == 2000

    def test_line_defaults_follow_preparation(self, db_session, company_a, burger, soda):
        order = order_store.create_order(
            company_id=company_a.id,
            target_type="table",
            target_number="5",
            items=[_line(burger), _line(soda)],
        )
        assert order.items[0].status is ItemStatus.PENDING
        assert order.items[1].status is ItemStatus.DELIVERED
        assert [i.position for i in order.items] == [0, 1]

    def test_empty_items_rejected(self, db_session, company_a):
        with pytest.raises(ValidationError):
            order_store.create_order(company_id=company_a.id, target_type="table", target_number="5", items=[])
        assert db_session.query(Order).count() == 0

    def test_missing_table_number_rejected(self, db_session, company_a, burger):
        with pytest.raises(ValidationError):
            order_store.create_order(company_id=company_a.id, target_type="table", target_number=None,
                                     items=[_line(burger)])

    def test_zero_quantity_rejected(self, db_session, company_a, burger):
        bad = LineItem(product_id=burger.id, name="Burger", price_cents=1000, quantity=0)
        with pytest.raises(ValidationError):
            order_store.create_order(company_id=company_a.id, target_type="table", target_number="5", items=[bad])

    def test_unknown_product_rejected(self, db_session, company_a, burger):
        ghost = LineItem(product_id=99999, name="Ghost", price_cents=100, quantity=1)
        with pytest.raises(NotFoundError):
            order_store.create_order(company_id=company_a.id, target_type="table", target_number="5", items=[ghost])

    def test_commit_fires_orders_changed(self, db_session, company_a, burger):
        received = []

        def _listener(sender, company_id=None, **extra):
            received.append(company_id)

        orders_changed.connect(_listener)
        try:
            order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                     items=[_line(burger)])
        finally:
            orders_changed.disconnect(_listener)

        assert received == [company_a.id]

    def test_custom_history_is_kept(self, db_session, company_a, burger):
        order = order_store.create_order(
            company_id=company_a.id,
            target_type="room",
            target_number="204",
            items=[_line(burger)],
            source=OrderSource.PUBLIC,
            history=[HistoryEntry("Pedido criado pelo cliente", employee_name=None)],
        )
        assert order.history[0].status == "Pedido criado pelo cliente"
        assert order.source is OrderSource.PUBLIC


class TestImmutability:

    def test_item_price_cannot_change(self, db_session, company_a, burger):
        order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger)])
        order.items[0].price_cents = 1
        with pytest.raises(ConflictError):
            db_session.commit()
        db_session.rollback()

        item = db_session.query(OrderItem).filter_by(order_id=order.id).one()
        assert item.price_cents == 1000

    def test_history_is_append_only(self, db_session, company_a, burger):
        order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger)])
        order.history[0].status = "rewritten"
        with pytest.raises(ConflictError):
            db_session.commit()
        db_session.rollback()


class TestQueries:

    def test_find_open_orders_sorted_and_filtered(self, db_session, company_a, burger, soda):
        first = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger)], timestamp=2000)
        earlier = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                           items=[_line(soda)], timestamp=1000)
        order_store.create_order(company_id=company_a.id, target_type="table", target_number="6",
                                 items=[_line(soda)], timestamp=1500)

        found = order_store.find_open_orders(company_a.id, TargetType.TABLE, "5")
        assert [o.id for o in found] == [earlier.id, first.id]

    def test_find_open_orders_excludes_counter_and_archived(self, db_session, company_a, burger):
        order_store.create_order(company_id=company_a.id, target_type="counter", target_number=None,
                                 items=[_line(burger)], status=OrderStatus.COMPLETED)
        order_store.create_order(company_id=company_a.id, target_type="table", target_number="9",
                                 items=[_line(burger)], is_archived=True)
        open_order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                              items=[_line(burger)])

        assert [o.id for o in order_store.find_open_orders(company_a.id)] == [open_order.id]

    def test_get_orders_by_user(self, db_session, company_a, burger):
        mine = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                        items=[_line(burger)], user_id=42)
        order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                 items=[_line(burger)], user_id=43)

        assert [o.id for o in order_store.get_orders(company_a.id, 42)] == [mine.id]
        assert len(order_store.get_orders(company_a.id)) == 2

    def test_get_orders_can_hide_archived(self, db_session, company_a, burger):
        order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                 items=[_line(burger)], is_archived=True)
        assert order_store.get_orders(company_a.id, include_archived=False) == []
        assert len(order_store.get_orders(company_a.id)) == 1


class TestArchival:

    def test_archive_by_target_only_touches_that_key(self, db_session, company_a, burger):
        for _ in range(2):
            order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                     items=[_line(burger)])
        other = order_store.create_order(company_id=company_a.id, target_type="table", target_number="6",
                                         items=[_line(burger)])

        assert order_store.archive_orders_by_target(company_a.id, "table", "5") == 2
        assert order_store.find_open_orders(company_a.id, TargetType.TABLE, "5") == []
        assert db_session.get(Order, other.id).is_archived is False

        # Archived orders stay queryable
        assert len(order_store.get_orders(company_a.id)) == 3

    def test_archive_empty_target_is_zero(self, db_session, company_a):
        assert order_store.archive_orders_by_target(company_a.id, "table", "77") == 0

    def test_archive_completed_orders(self, db_session, company_a, burger):
        done = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                        items=[_line(burger)], status=OrderStatus.COMPLETED)
        pending = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                           items=[_line(burger)])

        assert order_store.archive_completed_orders(company_a.id) == 1
        assert db_session.get(Order, done.id).is_archived is True
        assert db_session.get(Order, pending.id).is_archived is False

    def test_archive_single_order_in_other_company_is_not_found(self, db_session, company_a, company_b, burger):
        order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger)])
        with pytest.raises(NotFoundError):
            order_store.archive_order(order.id, company_b.id)


class TestItemStatus:

    def test_partial_delivery_accepts_order(self, db_session, company_a, burger, fries):
        order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger), _line(fries)])

        order = order_store.update_item_status(order.id, company_a.id, 0, "delivered", employee_name="Rui")
        assert order.status is OrderStatus.ACCEPTED
        assert order.history[-1].employee_name == "Rui"

        order = order_store.update_item_status(order.id, company_a.id, 1, "delivered")
        assert order.status is OrderStatus.COMPLETED
        assert order.finalized_at is not None

    def test_bad_index_and_status(self, db_session, company_a, burger):
        order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger)])
        with pytest.raises(NotFoundError):
            order_store.update_item_status(order.id, company_a.id, 3, "delivered")
        with pytest.raises(ValidationError):
            order_store.update_item_status(order.id, company_a.id, 0, "eaten")

    def test_archived_order_cannot_change(self, db_session, company_a, burger):
        order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger)], is_archived=True)
        with pytest.raises(ConflictError):
            order_store.update_item_status(order.id, company_a.id, 0, "delivered")

    def test_confirm_receipt_completes_everything(self, db_session, company_a, burger, fries):
        order = order_store.create_order(company_id=company_a.id, target_type="table", target_number="5",
                                         items=[_line(burger), _line(fries)], source=OrderSource.PUBLIC)

        order = order_store.confirm_order_receipt(order.id, company_a.id)

        assert order.status is OrderStatus.COMPLETED
        assert {i.status for i in order.items} == {ItemStatus.RECEIVED}
        assert order.history[-1].status == "Pedido recebido e finalizado pelo cliente"
