"""Tests for settlement computation and generation."""

import pytest

from expense_settlement.calculators import SettlementInputs, compute_settlement
from expense_settlement.constants import Collection
from expense_settlement.errors import Forbidden, MissingLabor, MissingRevenue, MissingTax, NotFound, ValidationError
from expense_settlement.services.settlement_service import SettlementService

PERIOD = "2024-05"


async def approved_claim(store, project_id, amount, occur_date="2024-05-10T00:00:00+00:00", status="approved"):
    await store.insert(
        Collection.EXPENSE_CLAIMS,
        {
            "claim_id": f"c_{project_id}_{amount}_{status}_{occur_date[:7]}",
            "project_id": project_id,
            "status": status,
            "occur_date": occur_date,
            "amount_total": amount,
            "tax_amount": 0,
        },
    )


class TestComputeSettlement:
    """Pure profit and commission arithmetic."""

    def test_reference_scenario(self):
        figures = compute_settlement(
            SettlementInputs(revenue=500, expense_cost=100, tax_fee=50, labor_cost=100)
        )
        assert figures.profit == 250
        assert figures.profit_rate == 0.5
        assert figures.commission_rate == 0.12
        assert figures.commission_amount == 30

    def test_zero_revenue_has_zero_rate(self):
        figures = compute_settlement(
            SettlementInputs(revenue=0, expense_cost=10, tax_fee=0, labor_cost=0)
        )
        assert figures.profit == -10
        assert figures.profit_rate == 0
        assert figures.commission_amount == 0

    @pytest.mark.parametrize(
        "revenue,expense",
        [(100, 100), (100, 150), (1000, 999.99), (0, 0)],
    )
    def test_no_commission_without_profit(self, revenue, expense):
        figures = compute_settlement(
            SettlementInputs(revenue=revenue, expense_cost=expense, tax_fee=0, labor_cost=0)
        )
        if figures.profit <= 0:
            assert figures.commission_amount == 0
        assert figures.commission_amount >= 0

    def test_inputs_rounded_before_use(self):
        figures = compute_settlement(
            SettlementInputs(revenue=100.005, expense_cost=0.004, tax_fee=0, labor_cost=0)
        )
        assert figures.revenue == 100.01
        assert figures.expense_cost == 0
        assert figures.profit == 100.01

    def test_tier_boundary(self):
        # profit rate exactly 0.10 earns the 5% tier
        figures = compute_settlement(
            SettlementInputs(revenue=1000, expense_cost=900, tax_fee=0, labor_cost=0)
        )
        assert figures.profit_rate == pytest.approx(0.1)
        assert figures.commission_rate == 0.05
        assert figures.commission_amount == 5


class TestGenerateSettlement:
    async def test_reference_scenario(self, ctx, store, finance, period_data):
        await approved_claim(store, "P1", 60)
        await approved_claim(store, "P1", 40)
        await period_data("P1", revenue=500, labor=100, tax_fee=50)

        settlement = await SettlementService(ctx).generate_settlement("P1", PERIOD, finance)

        assert settlement["expense_cost"] == 100
        assert settlement["profit"] == 250
        assert settlement["profit_rate"] == 0.5
        assert settlement["commission_rate"] == 0.12
        assert settlement["commission_amount"] == 30
        assert settlement["rule_version"] == "default-v1"
        assert settlement["snapshot"]["claim_count"] == 2
        assert settlement["snapshot"]["revenue_record"]["revenue_amount"] == 500
        assert settlement["snapshot"]["rule"]["effective_from"] == "1970-01"

    async def test_only_approved_in_period_claims_count(self, ctx, store, finance, period_data):
        await approved_claim(store, "P1", 100)
        await approved_claim(store, "P1", 999, status="submitted")
        await approved_claim(store, "P1", 999, occur_date="2024-06-01T00:00:00+00:00")
        await approved_claim(store, "P2", 999)
        await period_data("P1", revenue=500, labor=100, tax_fee=50)

        settlement = await SettlementService(ctx).generate_settlement("P1", PERIOD, finance)
        assert settlement["expense_cost"] == 100

    async def test_regeneration_is_idempotent(self, ctx, store, finance, period_data):
        await approved_claim(store, "P1", 100)
        await period_data("P1", revenue=500, labor=100, tax_fee=50)
        service = SettlementService(ctx)

        first = await service.generate_settlement("P1", PERIOD, finance)
        second = await service.generate_settlement("P1", PERIOD, finance)

        assert second["settlement_id"] == first["settlement_id"]
        assert second["profit"] == first["profit"]
        assert second["commission_amount"] == first["commission_amount"]
        stored = await store.find_many(
            Collection.PROJECT_SETTLEMENTS, {"project_id": "P1", "period": PERIOD}
        )
        assert len(stored) == 1

    async def test_recomputation_overwrites(self, ctx, store, finance, period_data):
        await period_data("P1", revenue=500, labor=100, tax_fee=50)
        service = SettlementService(ctx)
        await service.generate_settlement("P1", PERIOD, finance)

        await period_data("P1", revenue=1000)
        updated = await service.generate_settlement("P1", PERIOD, finance)

        assert updated["profit"] == 850
        assert len(await store.list(Collection.PROJECT_SETTLEMENTS)) == 1

    async def test_missing_revenue(self, ctx, finance, period_data):
        await period_data("P1", labor=100, tax_fee=50)
        with pytest.raises(MissingRevenue) as exc_info:
            await SettlementService(ctx).generate_settlement("P1", PERIOD, finance)
        assert exc_info.value.code == "MISSING_REVENUE"

    async def test_missing_labor(self, ctx, store, finance, period_data):
        await period_data("P1", revenue=100)
        await store.insert(
            Collection.PROJECT_TAX_FEES, {"project_id": "P1", "period": PERIOD, "tax_fee_amount": 5}
        )
        with pytest.raises(MissingLabor):
            await SettlementService(ctx).generate_settlement("P1", PERIOD, finance)

    async def test_missing_tax(self, ctx, store, finance, period_data):
        await period_data("P1", revenue=100)
        await store.insert(
            Collection.PROJECT_LABOR_ALLOCATIONS, {"project_id": "P1", "period": PERIOD, "labor_amount": 5}
        )
        with pytest.raises(MissingTax) as exc_info:
            await SettlementService(ctx).generate_settlement("P1", PERIOD, finance)
        assert exc_info.value.status_code == 422

    async def test_zero_records_are_not_missing(self, ctx, finance, period_data):
        await period_data("P1", revenue=0, labor=0, tax_fee=0)
        settlement = await SettlementService(ctx).generate_settlement("P1", PERIOD, finance)
        assert settlement["profit"] == 0
        assert settlement["commission_amount"] == 0

    async def test_requires_finance_or_admin(self, ctx, applicant):
        with pytest.raises(Forbidden):
            await SettlementService(ctx).generate_settlement("P1", PERIOD, applicant)

    async def test_bad_period(self, ctx, finance):
        with pytest.raises(ValidationError):
            await SettlementService(ctx).generate_settlement("P1", "2024-13", finance)

    async def test_audit_record(self, ctx, store, finance, period_data):
        await period_data("P1", revenue=500, labor=100, tax_fee=50)
        settlement = await SettlementService(ctx).generate_settlement("P1", PERIOD, finance)

        logs = await store.find_many(Collection.OPERATION_LOGS, {"action": "settlement.generate"})
        assert len(logs) == 1
        assert logs[0]["target_id"] == settlement["settlement_id"]
        assert logs[0]["user_id"] == "u_fin"


class TestCommissionRules:
    async def test_saved_rule_is_used(self, ctx, admin, finance, period_data):
        service = SettlementService(ctx)
        await service.save_commission_rule(
            {
                "version": "flat-2024",
                "effective_from": "2024-01",
                "ranges": [{"min": None, "max": None, "rate": 0.1}],
            },
            admin,
        )
        await period_data("P1", revenue=500, labor=100, tax_fee=50)

        settlement = await service.generate_settlement("P1", PERIOD, finance)
        assert settlement["rule_version"] == "flat-2024"
        assert settlement["commission_rate"] == 0.1
        assert settlement["commission_amount"] == 35

    async def test_saving_same_version_replaces(self, ctx, store, admin):
        service = SettlementService(ctx)
        payload = {"version": "v1", "ranges": [{"min": None, "max": None, "rate": 0.1}]}
        await service.save_commission_rule(payload, admin)
        await service.save_commission_rule({**payload, "status": "disabled"}, admin)

        rules = await store.list(Collection.COMMISSION_RULES)
        assert len(rules) == 1
        assert rules[0]["status"] == "disabled"

    async def test_only_admin_saves_rules(self, ctx, finance):
        with pytest.raises(Forbidden):
            await SettlementService(ctx).save_commission_rule(
                {"version": "v1", "ranges": [{"rate": 0.1}]}, finance
            )

    async def test_invalid_rule_rejected(self, ctx, admin):
        with pytest.raises(ValidationError) as exc_info:
            await SettlementService(ctx).save_commission_rule(
                {"version": "v1", "ranges": [{"min": 0, "max": 1, "rate": 2}]}, admin
            )
        assert exc_info.value.details == ["Range 1: rate must be between 0 and 1"]


class TestSettlementDetail:
    async def test_lookup_by_id_and_key(self, ctx, finance, period_data):
        await period_data("P1", revenue=500, labor=100, tax_fee=50)
        service = SettlementService(ctx)
        created = await service.generate_settlement("P1", PERIOD, finance)

        by_id = await service.get_settlement_detail(finance, settlement_id=created["settlement_id"])
        by_key = await service.get_settlement_detail(finance, project_id="P1", period=PERIOD)
        assert by_id == by_key

    async def test_requires_a_key(self, ctx, finance):
        with pytest.raises(ValidationError):
            await SettlementService(ctx).get_settlement_detail(finance)

    async def test_not_found(self, ctx, finance):
        with pytest.raises(NotFound):
            await SettlementService(ctx).get_settlement_detail(finance, settlement_id="nope")
