"""Customer deposits: cash in, partial and full withdrawal."""

import pytest

from partspos.errors import AlreadyWithdrawnError, ExceedsBalanceError, NotFoundError, ValidationError
from partspos.extensions import db
from partspos.models import CashLedgerEntry, CustomerDeposit
from partspos.models.deposits import DEPOSIT_STATUS_ACTIVE, DEPOSIT_STATUS_PARTIAL, DEPOSIT_STATUS_WITHDRAWN
from partspos.models.ledger import CASH_DEPOSIT, CASH_DEPOSIT_WITHDRAWAL
from partspos.services import cash_service, deposit_service

from conftest import assert_ledger_consistent


class TestDeposits:
    def test_create_deposit(self, customer, cashier_user):
        deposit = deposit_service.create_deposit(
            customer_id=customer.id, amount_afn_cents=100000, user_id=cashier_user.id,
        )
        assert deposit.deposit_number == "DEP-0001"
        assert deposit.status == DEPOSIT_STATUS_ACTIVE
        assert deposit.remaining_afn_cents == 100000
        assert cash_service.get_cash_balance() == 100000
        assert db.session.query(CashLedgerEntry).filter_by(entry_type=CASH_DEPOSIT).count() == 1

    def test_numbers_increment(self, customer):
        deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=100)
        second = deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=100)
        assert second.deposit_number == "DEP-0002"

    def test_partial_then_full_withdrawal(self, customer):
        deposit = deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=100000)

        deposit_service.withdraw_deposit(deposit.id, amount_afn_cents=40000)
        db.session.expire_all()
        deposit = db.session.get(CustomerDeposit, deposit.id)
        assert deposit.status == DEPOSIT_STATUS_PARTIAL
        assert deposit.remaining_afn_cents == 60000

        deposit_service.withdraw_deposit(deposit.id, amount_afn_cents=60000)
        db.session.expire_all()
        deposit = db.session.get(CustomerDeposit, deposit.id)
        assert deposit.status == DEPOSIT_STATUS_WITHDRAWN
        assert len(deposit.withdrawals) == 2
        assert cash_service.get_cash_balance() == 0
        assert db.session.query(CashLedgerEntry).filter_by(entry_type=CASH_DEPOSIT_WITHDRAWAL).count() == 2
        assert_ledger_consistent()

    def test_withdraw_more_than_remaining(self, customer):
        deposit = deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=1000)
        with pytest.raises(ExceedsBalanceError):
            deposit_service.withdraw_deposit(deposit.id, amount_afn_cents=1001)
        assert cash_service.get_cash_balance() == 1000

    def test_withdraw_from_empty_deposit(self, customer):
        deposit = deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=1000)
        deposit_service.withdraw_deposit(deposit.id, amount_afn_cents=1000)
        with pytest.raises(AlreadyWithdrawnError):
            deposit_service.withdraw_deposit(deposit.id, amount_afn_cents=1)

    def test_invalid_amounts(self, customer):
        with pytest.raises(ValidationError):
            deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=0)
        with pytest.raises(NotFoundError):
            deposit_service.withdraw_deposit(404, amount_afn_cents=1)

    def test_summary(self, customer):
        a = deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=1000)
        deposit_service.create_deposit(customer_id=customer.id, amount_afn_cents=3000)
        deposit_service.withdraw_deposit(a.id, amount_afn_cents=1000)

        summary = deposit_service.get_deposit_summary()
        assert summary["total_active_afn_cents"] == 3000
        assert summary["total_withdrawn_afn_cents"] == 1000
        assert summary["total_deposits"] == 2
