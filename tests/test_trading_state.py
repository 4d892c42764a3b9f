"""
Tests for the portal reducer.

Covers account derivation from trades, withdrawal bookkeeping, the
personal finance cash adjustments and the local snapshot shape.
"""
import math

import pytest

import config
from trading_state import (
    Action, Expense, Income, Trade, Withdrawal, available_drawdown, build_accounts,
    coerce_amount, initial_state, snapshot, trading_reducer,
    ADD_EXPENSE, ADD_INCOME, ADD_WITHDRAWAL, CLEAR_DATA, DELETE_EXPENSE, DELETE_INCOME,
    IMPORT_TRADES, LOAD_GOALS, LOAD_LOCALSTORAGE, LOAD_SETTINGS, LOAD_TRADES, LOAD_WITHDRAWALS,
    SET_CURRENT_CASH, SET_ERROR, SET_LOADING, SET_MONTHLY_GOAL, UPDATE_EXPENSE, UPDATE_INCOME,
)
from tests.fakes import trade_row, withdrawal_row


def reduce_all(*actions, state=None):
    state = state or initial_state()
    for action in actions:
        state = trading_reducer(state, action)
    return state


def make_trade(trade_id, account, profit, day="2026-10-19"):
    return Trade(id=trade_id, account=account, date=day, symbol="ES", profit=profit)


class TestCoerceAmount:
    @pytest.mark.parametrize("value,expected", [
        ("12.5", 12.5),
        (" 300 ", 300.0),
        (42, 42.0),
        ("abc", 0.0),
        ("", 0.0),
        (None, 0.0),
        (float("nan"), 0.0),
        (True, 0.0),
    ])
    def test_values(self, value, expected):
        assert coerce_amount(value) == expected


class TestAccounts:
    def test_available_drawdown_regular_account(self):
        assert available_drawdown("APEX-1", 105000.0) == 102000.0

    def test_available_drawdown_pa_account_is_capped(self):
        assert available_drawdown("PA-APEX-1", 105000.0) == config.PA_DRAWDOWN_CAP
        assert available_drawdown("PA-APEX-1", 100500.0) == 97500.0

    def test_build_accounts_aggregates_per_account(self):
        trades = [make_trade("1", "A", 500), make_trade("2", "A", -200), make_trade("3", "B", 50)]
        accounts = build_accounts(trades)

        assert set(accounts) == {"A", "B"}
        assert accounts["A"].total_pl == 300
        assert accounts["A"].current_balance == 100300
        assert accounts["A"].starting_balance == 100000
        assert accounts["A"].status == "Active"
        assert accounts["B"].available_drawdown == 97050

    def test_build_accounts_deducts_known_withdrawals_only(self):
        trades = [make_trade("1", "A", 1000)]
        withdrawals = [
            Withdrawal(id="w1", account="A", amount=400, date="2026-10-19"),
            Withdrawal(id="w2", account="ghost", amount=999, date="2026-10-19"),
        ]
        accounts = build_accounts(trades, withdrawals)

        assert set(accounts) == {"A"}
        assert accounts["A"].total_pl == 1000
        assert accounts["A"].current_balance == 100600


class TestLoadActions:
    def test_load_trades_from_remote_rows(self):
        state = reduce_all(Action(LOAD_TRADES, [
            trade_row("t1", "PA-1", 250.0),
            trade_row("t2", "PA-1", -50.0),
        ]))

        assert [t.id for t in state.trades] == ["t1", "t2"]
        assert state.trades[0].account == "PA-1"
        assert state.trades[0].date == "2026-10-19"
        assert state.trades[0].timestamp.hour == 9
        assert state.accounts["PA-1"].total_pl == 200.0
        assert state.loading is False
        assert state.error is None

    def test_load_withdrawals_after_trades_rebuilds_balances(self):
        state = reduce_all(
            Action(LOAD_TRADES, [trade_row("t1", "A", 1000.0)]),
            Action(LOAD_WITHDRAWALS, [withdrawal_row(7, "A", 300.0)]),
        )

        assert state.withdrawals[0].id == "7"
        assert state.accounts["A"].current_balance == 100700.0
        assert state.accounts["A"].total_pl == 1000.0

    def test_load_goals_keyed_by_month(self):
        state = reduce_all(Action(LOAD_GOALS, [
            {"month": "October 2026", "goal_amount": 5000},
            {"month": "November 2026", "goal_amount": "6000"},
        ]))
        assert state.monthly_goals == {"October 2026": 5000.0, "November 2026": 6000.0}

    def test_load_settings_sets_cash(self):
        state = reduce_all(Action(LOAD_SETTINGS, [{"user_id": "u", "current_cash": 2500}]))
        assert state.current_cash == 2500.0

    def test_load_settings_without_rows_keeps_cash(self):
        state = reduce_all(Action(SET_CURRENT_CASH, 10), Action(LOAD_SETTINGS, []))
        assert state.current_cash == 10.0


class TestTradingActions:
    def test_import_appends_and_keeps_withdrawals_deducted(self):
        state = reduce_all(
            Action(LOAD_TRADES, [trade_row("t1", "A", 100.0)]),
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="A", amount=50, date="2026-10-19")),
            Action(IMPORT_TRADES, [make_trade("t2", "A", 200.0), make_trade("t3", "New", -20.0)]),
        )

        assert [t.id for t in state.trades] == ["t1", "t2", "t3"]
        assert state.accounts["A"].total_pl == 300.0
        # withdrawal stays deducted
        assert state.accounts["A"].current_balance == 100250.0
        assert state.accounts["New"].current_balance == 99980.0

    def test_add_withdrawal_decrements_balance(self):
        state = reduce_all(
            Action(IMPORT_TRADES, [make_trade("t1", "PA-2", 4000.0)]),
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="PA-2", amount=1000, date="2026-10-19")),
        )

        account = state.accounts["PA-2"]
        assert account.current_balance == 103000.0
        assert account.total_pl == 4000.0
        assert account.available_drawdown == 100000.0
        assert len(state.withdrawals) == 1

    def test_replaying_a_withdrawal_decrements_twice(self):
        withdrawal = Withdrawal(id="w1", account="A", amount=100, date="2026-10-19")
        state = reduce_all(
            Action(IMPORT_TRADES, [make_trade("t1", "A", 0.5)]),
            Action(ADD_WITHDRAWAL, withdrawal),
            Action(ADD_WITHDRAWAL, withdrawal),
        )
        assert state.accounts["A"].current_balance == pytest.approx(99800.5)
        assert len(state.withdrawals) == 2

    def test_withdrawal_for_unknown_account_is_recorded_only(self):
        state = reduce_all(
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="nobody", amount=100, date="2026-10-19")),
        )
        assert state.accounts == {}
        assert len(state.withdrawals) == 1

    def test_withdrawal_before_first_trade_counts_once_trades_arrive(self):
        state = reduce_all(
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="X", amount=500, date="2026-10-18")),
            Action(IMPORT_TRADES, [make_trade("t1", "X", 100.0)]),
        )
        assert state.accounts["X"].total_pl == 100.0
        assert state.accounts["X"].current_balance == 99600.0

    def test_set_monthly_goal_overwrites(self):
        state = reduce_all(
            Action(SET_MONTHLY_GOAL, {"month": "October 2026", "amount": 1000}),
            Action(SET_MONTHLY_GOAL, {"month": "October 2026", "amount": "2500"}),
        )
        assert state.monthly_goals == {"October 2026": 2500.0}


class TestFinanceActions:
    def test_paid_expense_lowers_cash(self):
        state = reduce_all(
            Action(SET_CURRENT_CASH, 1000),
            Action(ADD_EXPENSE, Expense(id="e1", category="Rent", amount=200, is_paid=True)),
            Action(ADD_EXPENSE, Expense(id="e2", category="Food", amount=50, is_paid=False)),
        )
        assert state.current_cash == 800.0
        assert [e.id for e in state.expenses] == ["e1", "e2"]

    def test_update_expense_applies_difference(self):
        state = reduce_all(
            Action(SET_CURRENT_CASH, 1000),
            Action(ADD_EXPENSE, Expense(id="e1", amount=200, is_paid=True)),
            Action(UPDATE_EXPENSE, Expense(id="e1", amount=300, is_paid=True)),
        )
        assert state.current_cash == 700.0
        assert state.expenses[0].amount == 300.0

        state = trading_reducer(state, Action(UPDATE_EXPENSE, Expense(id="e1", amount=300, is_paid=False)))
        assert state.current_cash == 1000.0

    def test_delete_expense_refunds_paid_amount(self):
        state = reduce_all(
            Action(SET_CURRENT_CASH, 1000),
            Action(ADD_EXPENSE, Expense(id="e1", amount=200, is_paid=True)),
            Action(DELETE_EXPENSE, "e1"),
        )
        assert state.expenses == []
        assert state.current_cash == 1000.0

    def test_unknown_expense_id_is_a_no_op(self):
        state = reduce_all(Action(SET_CURRENT_CASH, 5))
        assert trading_reducer(state, Action(DELETE_EXPENSE, "missing")) is state
        assert trading_reducer(state, Action(UPDATE_EXPENSE, Expense(id="missing", amount=1))) is state

    def test_received_income_raises_cash(self):
        state = reduce_all(
            Action(ADD_INCOME, Income(id="i1", category="Salary", amount=3000, is_paid=True)),
            Action(ADD_INCOME, Income(id="i2", category="Bonus", amount=500, is_paid=False)),
        )
        assert state.current_cash == 3000.0

        state = trading_reducer(state, Action(UPDATE_INCOME, Income(id="i2", amount=500, is_paid=True)))
        assert state.current_cash == 3500.0

        state = trading_reducer(state, Action(DELETE_INCOME, "i1"))
        assert state.current_cash == 500.0
        assert [i.id for i in state.incomes] == ["i2"]

    def test_set_current_cash_coerces(self):
        assert reduce_all(Action(SET_CURRENT_CASH, "not a number")).current_cash == 0.0


class TestTransitions:
    def test_loading_and_error_flags(self):
        state = reduce_all(Action(SET_LOADING, True))
        assert state.loading is True

        state = trading_reducer(state, Action(SET_ERROR, "boom"))
        assert state.error == "boom"
        assert state.loading is False

    def test_unknown_action_returns_same_state(self):
        state = initial_state()
        assert trading_reducer(state, Action("NOT_AN_ACTION", 1)) is state

    def test_reducer_does_not_mutate_input(self):
        state = reduce_all(Action(IMPORT_TRADES, [make_trade("t1", "A", 10)]))
        before = state.model_dump()
        trading_reducer(state, Action(IMPORT_TRADES, [make_trade("t2", "A", 20)]))
        trading_reducer(state, Action(ADD_WITHDRAWAL, Withdrawal(id="w", account="A", amount=5, date="")))
        assert state.model_dump() == before

    def test_clear_data_resets_everything(self):
        state = reduce_all(
            Action(IMPORT_TRADES, [make_trade("t1", "A", 10)]),
            Action(SET_CURRENT_CASH, 99),
            Action(CLEAR_DATA),
        )
        assert state == initial_state()


class TestSnapshot:
    def test_snapshot_keys_and_no_transient_fields(self):
        state = reduce_all(Action(SET_LOADING, True), Action(SET_ERROR, "x"))
        data = snapshot(state)
        assert set(data) == {"trades", "accounts", "withdrawals", "monthlyGoals",
                             "expenses", "incomes", "currentCash"}

    def test_local_snapshot_restores_and_regenerates_accounts(self):
        state = reduce_all(
            Action(IMPORT_TRADES, [make_trade("t1", "PA-1", 1500.0), make_trade("t2", "B", -100.0)]),
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="PA-1", amount=500, date="2026-10-19")),
            Action(SET_MONTHLY_GOAL, {"month": "October 2026", "amount": 3000}),
            Action(SET_CURRENT_CASH, 1200),
            Action(ADD_EXPENSE, Expense(id="e1", amount=200, is_paid=True, due_date="2026-10-25")),
        )
        data = snapshot(state)
        # accounts in the blob are ignored and derived again
        data["accounts"] = {}

        restored = trading_reducer(initial_state(), Action(LOAD_LOCALSTORAGE, data))

        assert restored.trades == state.trades
        assert restored.withdrawals == state.withdrawals
        assert restored.monthly_goals == state.monthly_goals
        assert restored.expenses == state.expenses
        assert restored.current_cash == 1000.0
        assert restored.accounts["PA-1"].current_balance == 101000.0
        assert restored.accounts["B"].total_pl == -100.0

    def test_local_snapshot_with_missing_keys(self):
        restored = trading_reducer(initial_state(), Action(LOAD_LOCALSTORAGE, {"trades": None}))
        assert restored == initial_state()
        assert not math.isnan(restored.current_cash)

    @pytest.mark.parametrize("actions", [
        [
            Action(IMPORT_TRADES, [make_trade("t1", "A", 800.0)]),
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="A", amount=300, date="2026-10-19")),
            Action(IMPORT_TRADES, [make_trade("t2", "A", -50.0)]),
        ],
        [
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="X", amount=500, date="2026-10-18")),
            Action(IMPORT_TRADES, [make_trade("t1", "X", 100.0)]),
        ],
        [
            Action(IMPORT_TRADES, [make_trade("t1", "PA-1", 4000.0)]),
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="PA-1", amount=1000, date="2026-10-19")),
            Action(ADD_WITHDRAWAL, Withdrawal(id="w2", account="B", amount=200, date="2026-10-19")),
            Action(IMPORT_TRADES, [make_trade("t2", "B", 25.0), make_trade("t3", "PA-1", -75.0)]),
            Action(ADD_WITHDRAWAL, Withdrawal(id="w1", account="PA-1", amount=1000, date="2026-10-19")),
        ],
    ], ids=["withdrawal-between-imports", "withdrawal-before-first-trade", "mixed-with-replay"])
    def test_reloading_snapshot_reproduces_accounts(self, actions):
        state = reduce_all(*actions)
        reloaded = trading_reducer(initial_state(), Action(LOAD_LOCALSTORAGE, snapshot(state)))
        assert reloaded.accounts == state.accounts
