# Overview: Pytest coverage for the stock and transaction ledgers and catalog lookups.

import pytest

from comanda.models import ItemStatus, StockMovement
from comanda.services import stock_service, transaction_service
from comanda.services.catalog_service import lookup_product, normalize_sku, resolve_line_items
from comanda.validation import NotFoundError, ValidationError, to_amount


class TestStockLedger:

    def test_level_is_sum_of_movements(self, db_session, company_a, burger):
        assert stock_service.get_stock_level(company_a.id, burger.id) == 0

        stock_service.adjust_stock(company_a.id, burger.id, 10, "Recebimento")
        stock_service.adjust_stock(company_a.id, burger.id, -3, stock_service.SALE_REASON)

        assert stock_service.get_stock_level(company_a.id, burger.id) == 7
        assert db_session.query(StockMovement).count() == 2

    def test_stock_may_go_negative(self, db_session, company_a, soda):
        stock_service.adjust_stock(company_a.id, soda.id, -2, stock_service.SALE_REASON)
        assert stock_service.get_stock_level(company_a.id, soda.id) == -2

    def test_zero_delta_rejected(self, db_session, company_a, soda):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(company_a.id, soda.id, 0, "Nada")

    def test_reason_required(self, db_session, company_a, soda):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(company_a.id, soda.id, 1, "  ")

    def test_foreign_product_rejected(self, db_session, company_a, product_b):
        with pytest.raises(NotFoundError):
            stock_service.adjust_stock(company_a.id, product_b.id, 1, "Recebimento")

    def test_movements_newest_first(self, db_session, company_a, soda):
        stock_service.adjust_stock(company_a.id, soda.id, 5, "Recebimento")
        stock_service.adjust_stock(company_a.id, soda.id, -1, stock_service.SALE_REASON)

        movements = stock_service.list_movements(company_a.id, soda.id)
        assert [m.delta for m in movements] == [-1, 5]
        assert movements[0].to_dict()["type"] == "out"


class TestTransactionLedger:

    def test_record_income(self, db_session, company_a):
        tx = transaction_service.record_transaction(
            company_id=company_a.id,
            type="income",
            category=transaction_service.SALE_CATEGORY,
            description="Venda PDV - Mesa 5",
            amount_cents=2900,
            payment_method="pix",
        )
        data = tx.to_dict()
        assert data["amount"] == 29.00
        assert data["status"] == "completed"
        assert data["date"] is not None

    @pytest.mark.parametrize(
        "field,value",
        [("type", "refund"), ("status", "void"), ("amount_cents", -1)],
    )
    def test_invalid_values_rejected(self, db_session, company_a, field, value):
        fields = dict(company_id=company_a.id, type="income", category="Outros",
                      description="x", amount_cents=100)
        fields[field] = value
        with pytest.raises(ValidationError):
            transaction_service.record_transaction(**fields)

    def test_list_filters_by_type_and_company(self, db_session, company_a, company_b):
        for company, tx_type in ((company_a, "income"), (company_a, "expense"), (company_b, "income")):
            transaction_service.record_transaction(company_id=company.id, type=tx_type,
                                                   category="Outros", description="x", amount_cents=100)

        assert len(transaction_service.list_transactions(company_a.id)) == 2
        assert [t.type for t in transaction_service.list_transactions(company_a.id, type="income")] == ["income"]


class TestMoney:

    @pytest.mark.parametrize("cents,amount", [(0, 0.0), (2900, 29.0), (1, 0.01), (123456, 1234.56)])
    def test_to_amount(self, cents, amount):
        assert to_amount(cents) == amount


class TestCatalogLookup:

    def test_barcode_then_sku(self, db_session, company_a, burger, soda):
        assert lookup_product(company_a.id, "7890000000011").id == burger.id
        assert lookup_product(company_a.id, " soda ").id == soda.id

    def test_unknown_code(self, db_session, company_a, burger):
        with pytest.raises(NotFoundError):
            lookup_product(company_a.id, "nope")

    def test_normalize_sku(self):
        assert normalize_sku(" ab c ") == "ABC"

    def test_resolve_line_items_uses_catalog_price(self, db_session, company_a, burger, soda):
        lines = resolve_line_items(company_a.id, [
            {"product_id": burger.id, "quantity": 2, "price_cents": 1},
            {"code": "SODA"},
        ])

        assert [(l.name, l.price_cents, l.quantity) for l in lines] == [("Burger", 1000, 2), ("Soda", 500, 1)]

    def test_resolve_line_items_forced_status(self, db_session, company_a, soda):
        lines = resolve_line_items(company_a.id, [{"product_id": soda.id}], status=ItemStatus.PENDING)
        assert lines[0].status is ItemStatus.PENDING

    @pytest.mark.parametrize("raw", [None, [], ["x"], [{"quantity": 1}], [{"product_id": 1, "quantity": 0}]])
    def test_resolve_line_items_rejects_bad_input(self, db_session, company_a, raw):
        with pytest.raises(ValidationError):
            resolve_line_items(company_a.id, raw)

    def test_inactive_product_rejected(self, db_session, company_a, burger):
        burger.is_active = False
        db_session.commit()
        with pytest.raises(NotFoundError):
            resolve_line_items(company_a.id, [{"product_id": burger.id}])
