"""
tests/test_reconciliation.py — Ledger Reconciliation Tests
===========================================================
"""

from __future__ import annotations

from sqlalchemy import update

from conftest import make_account
from pullquest.database.models import Account, Stake
from pullquest.services.account_service import get_account
from pullquest.services.reconciliation_service import reconcile_ledger
from pullquest.services.refill_service import monthly_refill
from pullquest.services.stake_service import create_stake, settle_by_webhook


class TestReconcileLedger:
    def test_clean_ledger_reports_no_drift(self, db_engine):
        account = make_account(db_engine, coins=50)
        create_stake(
            db_engine, account.id, 1, "acme/api", 20, "https://pr/1",
            bounty=40, xp_reward=100,
        )
        settle_by_webhook(db_engine, "https://pr/1", True, "closed")
        monthly_refill(db_engine)

        report = reconcile_ledger(db_engine)
        assert report["checked"] == 1
        assert report["drift"] == []
        assert report["ranks_repaired"] == 0
        assert report["unjournaled_stakes"] == []

    def test_out_of_band_write_is_reported_not_rewritten(self, db_engine, db_session):
        account = make_account(db_engine, coins=50)
        db_session.execute(
            update(Account).where(Account.id == account.id).values(coins=999)
        )
        db_session.commit()

        report = reconcile_ledger(db_engine)

        assert report["drift"] == [{
            "account_id": account.id,
            "stored_coins": 999,
            "ledger_coins": 50,
            "stored_xp": 0,
            "ledger_xp": 0,
        }]
        assert get_account(db_engine, account.id).coins == 999

    def test_stale_rank_is_repaired(self, db_engine, db_session):
        account = make_account(db_engine)
        db_session.execute(
            update(Account).where(Account.id == account.id).values(rank="Code Master")
        )
        db_session.commit()

        report = reconcile_ledger(db_engine)

        assert report["ranks_repaired"] == 1
        assert get_account(db_engine, account.id).rank == "Code Novice"

    def test_pending_stake_without_debit_is_flagged(self, db_engine, db_session):
        account = make_account(db_engine)
        db_session.add(Stake(
            account_id=account.id, issue_id=5, repository="acme/api",
            amount=3, pr_url="https://pr/5",
        ))
        db_session.commit()

        report = reconcile_ledger(db_engine)
        assert len(report["unjournaled_stakes"]) == 1
