"""
Tests for StockAggregator -- ledger fold against authoritative stock.

Covers:
- IN/OUT totals per transaction class
- Adjustments excluded from IN/OUT and surfaced as variance
- Opening stock without history
- Collapsed keys summing variants
"""

from stock_kernel.domain.values import ProductKey

AGENCY = "agency-north"


class TestAggregate:

    def test_in_out_and_balance(self, aggregator, post, mug):
        post(mug, "external_receipt", 20)
        post(mug, "return_customer", 2)
        post(mug, "internal_sale", -7)
        post(mug, "return_company", -1)

        agg = aggregator.aggregate(mug, AGENCY)

        assert agg.stock_in == 22
        assert agg.stock_out == 8
        assert agg.calculated_balance == 14
        assert agg.current_stock == 14
        assert agg.variance == 0
        assert agg.transaction_count == 4

    def test_adjustment_excluded_from_in_out(self, aggregator, post, mug):
        post(mug, "external_receipt", 10)
        post(mug, "internal_sale", -4)
        post(mug, "adjustment", 15)

        agg = aggregator.aggregate(mug, AGENCY)

        assert agg.current_stock == 21
        assert (agg.stock_in, agg.stock_out) == (10, 4)
        assert agg.calculated_balance == 6
        assert agg.variance == 15
        assert agg.transaction_count == 3

    def test_approved_adjustment_shows_as_variance(
        self, aggregator, post, adjustment_service, approval_service, requester, reviewer, mug
    ):
        post(mug, "external_receipt", 10)
        request_id = adjustment_service.submit_single(
            mug, AGENCY, 7, "Damaged Goods", "three broken", requester
        )
        approval_service.approve(request_id, reviewer)

        agg = aggregator.aggregate(mug, AGENCY)

        assert (agg.stock_in, agg.stock_out) == (10, 0)
        assert agg.calculated_balance == 10
        assert agg.current_stock == 7
        assert agg.variance == -3
        assert agg.transaction_count == 2

    def test_opening_stock_without_history(self, aggregator, register, mug):
        register(mug, opening_stock=12)
        agg = aggregator.aggregate(mug, AGENCY)
        assert (agg.stock_in, agg.stock_out, agg.calculated_balance) == (0, 0, 0)
        assert agg.variance == 12
        assert agg.last_transaction_at is None

    def test_unknown_item_is_all_zero(self, aggregator, mug):
        agg = aggregator.aggregate(mug, AGENCY)
        assert agg.current_stock == 0
        assert agg.variance == 0

    def test_collapsed_key_sums_variants(self, aggregator, post, register, shirt_red_m, shirt_blue_l):
        register(shirt_blue_l, opening_stock=2)
        post(shirt_red_m, "external_receipt", 5)
        post(shirt_blue_l, "external_receipt", 3)
        post(shirt_red_m, "internal_sale", -1)

        agg = aggregator.aggregate(ProductKey.collapsed("SKU-100"), AGENCY)

        assert agg.stock_in == 8
        assert agg.stock_out == 1
        assert agg.current_stock == 9
        assert agg.variance == 2
        assert aggregator.current_stock("SKU-100|*|*", AGENCY) == 9

    def test_last_transaction_at(self, aggregator, post, mug):
        post(mug, "external_receipt", 1)
        last = post(mug, "external_receipt", 1)
        assert aggregator.aggregate(mug, AGENCY).last_transaction_at == last.occurred_at
