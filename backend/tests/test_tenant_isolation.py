# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

Two companies run the same table numbers side by side. Verifies that:
1. Tabs, orders and ledgers of Company A are invisible to Company B
2. A company cannot sell or stock another company's products
3. Cross-tenant lookups return 404 (not errors that reveal existence)
4. Closing table 5 in one company leaves table 5 of the other open
"""

import pytest

from comanda.models import Transaction
from comanda.services import stock_service, tab_service, transaction_service
from comanda.services.checkout_service import Operator, add_to_tab, finalize_checkout
from comanda.services.order_store import LineItem, order_store
from comanda.validation import NotFoundError, ValidationError


WAITER = Operator(user_id=7, user_name="Ana")


class TestTabIsolation:

    def test_same_table_number_is_two_tabs(self, db_session, company_a, company_b, burger, product_b):
        add_to_tab(company_id=company_a.id, target_type="table", target_number="5",
                   lines=[LineItem.from_product(burger, 1)], operator=WAITER)
        add_to_tab(company_id=company_b.id, target_type="table", target_number="5",
                   lines=[LineItem.from_product(product_b, 2)], operator=WAITER)

        assert tab_service.get_tab("table", "5", company_a.id).total_cents == 1000
        assert tab_service.get_tab("table", "5", company_b.id).total_cents == 600
        assert len(tab_service.get_all_tabs(company_a.id)) == 1
        assert len(tab_service.get_all_tabs(company_b.id)) == 1

    def test_checkout_archives_only_own_company(self, db_session, company_a, company_b, burger, product_b):
        add_to_tab(company_id=company_a.id, target_type="table", target_number="5",
                   lines=[LineItem.from_product(burger, 1)], operator=WAITER)
        add_to_tab(company_id=company_b.id, target_type="table", target_number="5",
                   lines=[LineItem.from_product(product_b, 1)], operator=WAITER)

        finalize_checkout(company_id=company_a.id, target_type="table", target_number="5",
                          cart_lines=[], payment_method="pix", operator=WAITER)

        assert tab_service.get_tab("table", "5", company_a.id).is_empty
        assert tab_service.get_tab("table", "5", company_b.id).total_cents == 300
        assert transaction_service.list_transactions(company_b.id) == []
        assert db_session.query(Transaction).filter_by(company_id=company_a.id).count() == 1

    def test_cannot_close_other_company_tab(self, db_session, company_a, company_b, burger):
        add_to_tab(company_id=company_a.id, target_type="table", target_number="5",
                   lines=[LineItem.from_product(burger, 1)], operator=WAITER)

        with pytest.raises(ValidationError):
            finalize_checkout(company_id=company_b.id, target_type="table", target_number="5",
                              cart_lines=[], payment_method="pix", operator=WAITER)
        assert tab_service.get_tab("table", "5", company_a.id).total_cents == 1000


class TestProductIsolation:

    def test_cannot_order_foreign_product(self, db_session, company_a, company_b, burger):
        with pytest.raises(NotFoundError):
            add_to_tab(company_id=company_b.id, target_type="table", target_number="5",
                       lines=[LineItem.from_product(burger, 1)], operator=WAITER)
        assert order_store.get_orders(company_b.id) == []

    def test_cannot_stock_foreign_product(self, db_session, company_a, company_b, burger):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(company_b.id, burger.id, 5, "Recebimento")
        assert stock_service.get_stock_level(company_a.id, burger.id) == 0


class TestApiIsolation:

    def test_foreign_order_is_not_found(self, client, db_session, company_a, company_b, burger, identity):
        order = add_to_tab(company_id=company_a.id, target_type="table", target_number="5",
                           lines=[LineItem.from_product(burger, 1)], operator=WAITER)

        assert client.get(f"/api/orders/{order.id}", headers=identity(company_b)).status_code == 404
        assert client.post(f"/api/orders/{order.id}/archive", headers=identity(company_b)).status_code == 404
        assert client.get(f"/api/orders/{order.id}", headers=identity(company_a)).status_code == 200

    def test_board_is_scoped(self, client, db_session, company_a, company_b, burger, identity):
        client.post("/api/tabs/table/5/items", headers=identity(company_a),
                    json={"items": [{"product_id": burger.id}]})

        assert client.get("/api/tabs", headers=identity(company_b)).json["tabs"] == []
        assert client.get("/api/orders", headers=identity(company_b)).json["orders"] == []

    def test_foreign_product_in_request(self, client, db_session, company_a, company_b, burger, identity):
        resp = client.post("/api/tabs/table/5/items", headers=identity(company_b),
                           json={"items": [{"product_id": burger.id}]})
        assert resp.status_code == 404

    def test_foreign_stock_is_not_found(self, client, db_session, company_a, company_b, burger, identity):
        assert client.get(f"/api/stock/{burger.id}", headers=identity(company_b)).status_code == 404
