from datetime import date
from decimal import Decimal

import pytest

from app.errors import (
    EmptyInputError,
    InvalidDateError,
    NoFinancialDataError,
    ReconcileError,
    TransportError,
)
from tests.helpers.openai_stub import text_response, tool_response


def _hdfc(value: float, **overrides) -> dict:
    asset = {
        "institution_name": "HDFC",
        "institution_type": "bank",
        "asset_name": "Savings Account",
        "current_value": value,
    }
    asset.update(overrides)
    return asset


def test_lunch_scenario_creates_one_transaction(services, chat):
    today = date.today().isoformat()
    chat.queue(tool_response(transactions=[
        {"transaction_date": today, "amount": 12.50, "category": "food", "description": "Lunch"},
    ]))

    result = services.orchestrator.process("I spent 12.50 on lunch today, category food")

    assert result.kind == "transactions"
    assert len(result.transactions) == 1
    txn = result.transactions[0]
    assert txn.amount == Decimal("12.50")
    assert txn.category == "food"
    assert txn.transaction_date == date.today()
    assert txn.confirm is False
    assert services.repo.get_transaction(txn.id) is not None


def test_hdfc_scenario_updates_same_asset(services, chat):
    chat.queue(
        tool_response(assets=[_hdfc(5000)]),
        tool_response(assets=[_hdfc(5200)]),
    )

    first = services.orchestrator.process("HDFC savings account has 5000")
    second = services.orchestrator.process("HDFC savings account is now 5200")

    created = first.assets[0]
    updated = second.assets[0]
    assert updated.id == created.id
    assert created.current_value == Decimal("5000")
    assert updated.current_value == Decimal("5200")
    assert len(services.repo.list_assets()) == 1
    assert [h.value for h in services.repo.get_asset_history(created.id)] == [
        Decimal("5000"), Decimal("5200"),
    ]


def test_transactions_keep_candidate_order(services, chat):
    chat.queue(tool_response(transactions=[
        {"transaction_date": "2024-05-01", "amount": 3, "category": "coffee", "description": "Latte"},
        {"transaction_date": "2024-05-01", "amount": 40, "category": "travel", "description": "Taxi"},
        {"transaction_date": "2024-04-30", "amount": 9.5, "category": "music", "description": "Album"},
    ]))

    result = services.orchestrator.process("latte 3, taxi 40, and an album yesterday for 9.50")

    assert [(t.category, t.amount) for t in result.transactions] == [
        ("coffee", Decimal("3")),
        ("travel", Decimal("40")),
        ("music", Decimal("9.5")),
    ]


def test_every_asset_is_reconciled(services, chat):
    chat.queue(tool_response(assets=[
        _hdfc(5000),
        _hdfc(100000, institution_name="Zerodha", institution_type="broker", asset_name="Stock Portfolio"),
    ]))

    result = services.orchestrator.process("HDFC savings 5000 and Zerodha portfolio 100000")

    assert result.kind == "assets"
    assert [a.institution_name for a in result.assets] == ["HDFC", "Zerodha"]
    assert result.failures == []


def test_assets_take_priority_over_transactions(services, chat):
    chat.queue(tool_response(
        transactions=[{"transaction_date": "2024-05-01", "amount": 5, "category": "food", "description": "Snack"}],
        assets=[_hdfc(5000)],
    ))

    result = services.orchestrator.process("HDFC savings has 5000, also spent 5 on a snack")

    assert result.kind == "assets"
    assert result.skipped_transactions == 1
    assert services.repo.list_transactions() == []


def test_partial_asset_failure_is_reported(services, chat, monkeypatch):
    chat.queue(tool_response(assets=[
        _hdfc(5000),
        _hdfc(1, institution_name="Citi", asset_name="Fixed Deposit"),
    ]))
    reconcile = services.reconciler.reconcile

    def fail_for_citi(candidate):
        if candidate.institution_name == "Citi":
            raise ReconcileError("store unavailable")
        return reconcile(candidate)

    monkeypatch.setattr(services.reconciler, "reconcile", fail_for_citi)

    result = services.orchestrator.process("HDFC 5000 and Citi FD 1")

    assert [a.institution_name for a in result.assets] == ["HDFC"]
    assert len(result.failures) == 1
    assert result.failures[0].candidate.institution_name == "Citi"
    assert result.failures[0].error == "store unavailable"


def test_all_assets_failing_raises(services, chat, monkeypatch):
    chat.queue(tool_response(assets=[_hdfc(5000)]))

    def always_fail(candidate):
        raise ReconcileError("store unavailable")

    monkeypatch.setattr(services.reconciler, "reconcile", always_fail)

    with pytest.raises(ReconcileError):
        services.orchestrator.process("HDFC 5000")


def test_empty_text_never_reaches_model(services, chat):
    with pytest.raises(EmptyInputError):
        services.orchestrator.process("")
    assert chat.calls == []


def test_extraction_errors_pass_through(services, chat):
    chat.queue(text_response("That doesn't look like an expense."))

    with pytest.raises(NoFinancialDataError) as exc_info:
        services.orchestrator.process("What's the weather?")

    assert exc_info.value.reply == "That doesn't look like an expense."


def test_transport_errors_are_not_retried(services, chat):
    response = tool_response(assets=[_hdfc(5000)])
    response.choices = []
    chat.queue(response)

    with pytest.raises(TransportError):
        services.orchestrator.process("HDFC 5000")
    assert len(chat.calls) == 1


def test_bad_date_from_model_persists_nothing(services, chat):
    chat.queue(tool_response(transactions=[
        {"transaction_date": "2024-05-01", "amount": 5, "category": "food", "description": "Snack"},
        {"transaction_date": "last tuesday", "amount": 7, "category": "food", "description": "Wrap"},
    ]))

    with pytest.raises(InvalidDateError):
        services.orchestrator.process("snack 5 today, wrap 7 last tuesday")
    assert services.repo.list_transactions() == []
