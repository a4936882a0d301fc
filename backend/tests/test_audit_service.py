# Overview: Pytest coverage for the audit trail (append, history, summaries, purge).

from datetime import timedelta

import pytest

from debtbook.errors import NotFoundFailure, ValidationFailure
from debtbook.models import AuditRecord
from debtbook.time_utils import utcnow


class TestRecordEvent:
    def test_appends_record(self, services, customer):
        record = services.audit.record_event(customer.id, "over_payment", 250, metadata={"reason": "test"})
        assert record.id is not None
        assert record.to_dict()["metadata"] == {"reason": "test"}

    def test_rejects_unknown_kind(self, services, customer):
        with pytest.raises(ValidationFailure, match="Invalid audit kind"):
            services.audit.record_event(customer.id, "bonus", 10)

    def test_rejects_negative_amount(self, services, customer):
        with pytest.raises(ValidationFailure):
            services.audit.record_event(customer.id, "over_payment", -1)

    def test_rejects_non_object_metadata(self, services, customer):
        with pytest.raises(ValidationFailure):
            services.audit.record_event(customer.id, "over_payment", 1, metadata=["x"])

    def test_unknown_customer(self, services, db_session):
        with pytest.raises(NotFoundFailure):
            services.audit.record_event(404, "over_payment", 10)


class TestHistory:
    def _seed(self, db_session, customer):
        now = utcnow()
        rows = [
            AuditRecord(customer_id=customer.id, kind="over_payment", amount=100, created_at=now - timedelta(days=3)),
            AuditRecord(customer_id=customer.id, kind="credit_used", amount=40, created_at=now - timedelta(days=2)),
            AuditRecord(customer_id=customer.id, kind="partial_payment", amount=70, created_at=now - timedelta(days=1)),
        ]
        db_session.add_all(rows)
        db_session.commit()
        return now

    def test_newest_first(self, services, db_session, customer):
        self._seed(db_session, customer)
        kinds = [r.kind for r in services.audit.customer_history(customer.id)]
        assert kinds == ["partial_payment", "credit_used", "over_payment"]

    def test_kind_filter(self, services, db_session, customer):
        self._seed(db_session, customer)
        records = services.audit.customer_history(customer.id, kinds=["credit_used"])
        assert [r.amount for r in records] == [40]

    def test_date_range_and_pagination(self, services, db_session, customer):
        now = self._seed(db_session, customer)
        records = services.audit.customer_history(
            customer.id, date_from=now - timedelta(days=2, hours=1), limit=1, offset=1
        )
        assert [r.kind for r in records] == ["credit_used"]

    def test_invalid_kind_filter(self, services, customer):
        with pytest.raises(ValidationFailure):
            services.audit.customer_history(customer.id, kinds=["nope"])

    def test_summary(self, services, db_session, customer):
        self._seed(db_session, customer)
        summary = services.audit.customer_summary(customer.id)
        assert summary.total_entries == 3
        assert summary.total_amount == 210
        assert summary.by_kind["credit_used"] == {"count": 1, "amount": 40}
        assert summary.to_dict()["date_range"] is not None

    def test_empty_summary(self, services, customer):
        assert services.audit.customer_summary(customer.id).to_dict()["date_range"] is None

    def test_credit_summary(self, services, db_session, make_customer):
        customer = make_customer(credit=60)
        self._seed(db_session, customer)
        summary = services.audit.credit_summary(customer.id)
        assert (summary.current_balance, summary.total_earned, summary.total_used) == (60, 100, 40)


class TestPurge:
    def test_deletes_only_old_replay_free_records(self, services, db_session, customer):
        now = utcnow()
        db_session.add_all([
            AuditRecord(customer_id=customer.id, kind="status_change", amount=0, created_at=now - timedelta(days=400)),
            AuditRecord(customer_id=customer.id, kind="status_change", amount=0, created_at=now - timedelta(days=10)),
            AuditRecord(customer_id=customer.id, kind="over_payment", amount=7, created_at=now - timedelta(days=400)),
        ])
        db_session.commit()

        assert services.audit.purge_older_than(365) == 1
        remaining = [(r.kind, r.amount) for r in services.audit.customer_history(customer.id)]
        assert remaining == [("status_change", 0), ("over_payment", 7)]

    def test_keeps_old_records_of_live_transactions(self, services, db_session, customer):
        outcome = services.transactions.create_transaction(customer.id, "sale", 1000, "cash")
        db_session.query(AuditRecord).update(
            {AuditRecord.created_at: utcnow() - timedelta(days=400)}, synchronize_session=False
        )
        db_session.commit()

        assert services.audit.purge_older_than(365) == 0
        assert [r.amount for r in services.audit.transaction_history(outcome.transaction.id)] == [1000]

    def test_rejects_non_positive_window(self, services):
        with pytest.raises(ValidationFailure):
            services.audit.purge_older_than(0)
