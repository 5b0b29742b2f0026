"""Tests for TrackingService: record lifecycle, retries, queries and stats."""

import threading
from datetime import timedelta

import pytest

from mailer_service.domain.models import (
    EmailEvent,
    MailPriority,
    MailStatus,
    TrackingFilters,
)
from mailer_service.persistence.database import close_database, init_database
from mailer_service.tracking import (
    InvalidStatusTransitionError,
    NotRetryableError,
    TrackingNotFoundError,
    TrackingRequest,
    TrackingService,
    TrackingValidationError,
)

from tests.helpers import FakeClock


def new_record(tracking, event=EmailEvent.INVENTORY_LOW, recipient="ops@acme.io", **extra):
    return tracking.create_tracking({"recipient": recipient, "event": event, **extra})


def fail(tracking, record_id, message="451 try again later"):
    return tracking.mark_as_failed(record_id, message, "SMTP_DELIVERY")


class TestCreateTracking:
    def test_creates_pending_record_with_catalog_defaults(self, tracking, clock):
        record = new_record(tracking, context={"product": "Widget"})

        assert record.status == MailStatus.PENDING
        assert record.template == "inventory/stock-low"
        assert record.subject == "🚨 Alerta de inventario bajo"
        assert record.retry_count == 0
        assert record.max_retries == 3
        assert record.created_at == clock()
        assert record.context == {"product": "Widget"}
        assert tracking.get_tracking_by_id(record.id) == record

    def test_transactional_flag_follows_event(self, tracking):
        assert new_record(tracking, EmailEvent.PASSWORD_RESET_REQUEST).is_transactional is True
        report = new_record(tracking, EmailEvent.REPORT_DAILY_SUMMARY)
        assert report.is_transactional is False
        assert report.is_marketing is True

    def test_sender_defaults(self, database, clock):
        service = TrackingService(clock=clock, sender_name="Acme", sender_email="alerts@acme.io")

        record = new_record(service)

        assert record.sender_name == "Acme"
        assert record.sender_email == "alerts@acme.io"

    def test_explicit_fields_win(self, tracking):
        record = tracking.create_tracking(
            TrackingRequest(
                recipient="ops@acme.io",
                event=EmailEvent.INVENTORY_LOW,
                priority=MailPriority.URGENT,
                subject="Custom subject",
                max_retries=5,
                tags=["stock"],
                campaign="q4",
            )
        )

        assert record.priority == MailPriority.URGENT
        assert record.subject == "Custom subject"
        assert record.max_retries == 5
        assert record.tags == ["stock"]

    def test_ids_are_unique(self, tracking):
        assert new_record(tracking).id != new_record(tracking).id

    @pytest.mark.parametrize(
        "data",
        [
            {"event": "inventory.low"},
            {"recipient": "   ", "event": "inventory.low"},
            {"recipient": "ops@acme.io"},
            {"recipient": "ops@acme.io", "event": "inventory.unknown"},
        ],
    )
    def test_invalid_requests_rejected(self, tracking, data):
        with pytest.raises(TrackingValidationError) as exc_info:
            tracking.create_tracking(data)

        assert exc_info.value.errors
        assert tracking.get_stats().total == 0

    def test_negative_max_retries_rejected(self, database):
        with pytest.raises(ValueError):
            TrackingService(max_retries=-1)


class TestMarkAsSent:
    def test_pending_to_sent(self, tracking, clock):
        record = new_record(tracking)
        clock.advance(seconds=1)

        sent = tracking.mark_as_sent(record.id, "<m1@acme.io>", "smtp")

        assert sent.status == MailStatus.SENT
        assert sent.sent_at == clock()
        assert sent.message_id == "<m1@acme.io>"
        assert sent.provider == "smtp"

    def test_second_mark_is_rejected(self, tracking):
        record = new_record(tracking)
        tracking.mark_as_sent(record.id, "<m1@acme.io>")

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            tracking.mark_as_sent(record.id, "<m2@acme.io>")

        assert exc_info.value.current == "sent"
        assert tracking.get_tracking_by_id(record.id).message_id == "<m1@acme.io>"

    def test_failed_record_cannot_be_marked_sent(self, tracking):
        record = new_record(tracking)
        fail(tracking, record.id)

        with pytest.raises(InvalidStatusTransitionError):
            tracking.mark_as_sent(record.id)

    def test_missing_record(self, tracking):
        with pytest.raises(TrackingNotFoundError):
            tracking.mark_as_sent("missing")

    def test_sent_after_retry_clears_error_state(self, tracking, clock):
        record = new_record(tracking)
        fail(tracking, record.id)
        clock.advance(seconds=2)
        tracking.retry_failed_email(record.id)

        sent = tracking.mark_as_sent(record.id, "<m2@acme.io>")

        assert sent.status == MailStatus.SENT
        assert sent.retry_count == 0
        assert sent.error_message is None
        assert sent.error_code is None
        assert sent.next_retry_at is None


class TestMarkAsFailed:
    def test_first_failure_schedules_retry(self, tracking, clock):
        record = new_record(tracking)

        failed = fail(tracking, record.id)

        assert failed.status == MailStatus.FAILED
        assert failed.retry_count == 1
        assert failed.failed_at == clock()
        assert failed.next_retry_at == clock() + timedelta(milliseconds=2000)
        assert failed.error_message == "451 try again later"
        assert failed.error_code == "SMTP_DELIVERY"

    def test_backoff_grows_with_each_failure(self, tracking, clock):
        record = new_record(tracking)
        fail(tracking, record.id)
        clock.advance(seconds=2)
        tracking.retry_failed_email(record.id)

        second = fail(tracking, record.id)

        assert second.retry_count == 2
        assert second.next_retry_at == clock() + timedelta(milliseconds=4000)

    def test_budget_exhaustion_is_terminal(self, tracking, clock):
        record = new_record(tracking)
        for delay in (2, 4):
            fail(tracking, record.id)
            clock.advance(seconds=delay)
            tracking.retry_failed_email(record.id)

        terminal = fail(tracking, record.id)

        assert terminal.retry_count == 3
        assert terminal.next_retry_at is None
        assert terminal.is_permanently_failed()
        with pytest.raises(NotRetryableError, match="budget exhausted"):
            tracking.retry_failed_email(record.id)

    def test_retry_count_never_exceeds_budget(self, tracking):
        record = new_record(tracking, max_retries=1)
        fail(tracking, record.id)

        again = fail(tracking, record.id)

        assert again.retry_count == 1

    def test_missing_record(self, tracking):
        with pytest.raises(TrackingNotFoundError):
            fail(tracking, "missing")


class TestStatusMarks:
    def test_delivery_then_read(self, tracking, clock):
        record = new_record(tracking)
        tracking.mark_as_sent(record.id)
        clock.advance(minutes=1)

        delivered = tracking.mark_as_delivered(record.id)
        clock.advance(minutes=1)
        read = tracking.mark_as_read(record.id)

        assert delivered.status == MailStatus.DELIVERED
        assert delivered.delivered_at == clock() - timedelta(minutes=1)
        assert read.status == MailStatus.READ
        assert read.read_at == clock()

    @pytest.mark.parametrize(
        "mark,status",
        [("mark_as_bounced", MailStatus.BOUNCED), ("mark_as_spam", MailStatus.SPAM)],
    )
    def test_bounce_and_spam_stamp_failed_at(self, tracking, clock, mark, status):
        record = new_record(tracking)
        tracking.mark_as_sent(record.id)

        updated = getattr(tracking, mark)(record.id)

        assert updated.status == status
        assert updated.failed_at == clock()
        assert updated in tracking.get_failed_emails()

    def test_unsubscribe(self, tracking):
        record = new_record(tracking)

        assert tracking.mark_as_unsubscribed(record.id).status == MailStatus.UNSUBSCRIBED

    def test_marks_on_missing_record(self, tracking):
        with pytest.raises(TrackingNotFoundError):
            tracking.mark_as_delivered("missing")


class TestRetry:
    def test_retry_before_backoff_elapses(self, tracking, clock):
        record = new_record(tracking)
        fail(tracking, record.id)
        clock.advance(milliseconds=1999)

        with pytest.raises(NotRetryableError, match="next retry not before"):
            tracking.retry_failed_email(record.id)

    def test_retry_resets_to_pending(self, tracking, clock):
        record = new_record(tracking)
        fail(tracking, record.id)
        clock.advance(seconds=2)

        retried = tracking.retry_failed_email(record.id)

        assert retried.status == MailStatus.PENDING
        assert retried.retry_count == 1
        assert retried.next_retry_at is None
        assert retried.error_message is None

    def test_retry_of_non_failed_record(self, tracking):
        record = new_record(tracking)

        with pytest.raises(NotRetryableError, match="status is pending"):
            tracking.retry_failed_email(record.id)

    def test_retry_of_missing_record(self, tracking):
        with pytest.raises(TrackingNotFoundError):
            tracking.retry_failed_email("missing")

    def test_retryable_emails(self, tracking, clock):
        waiting = new_record(tracking, recipient="a@b.com")
        fail(tracking, waiting.id)
        clock.advance(seconds=1)
        later = new_record(tracking, recipient="c@d.com")
        fail(tracking, later.id)

        clock.advance(seconds=1)
        assert [r.id for r in tracking.get_retryable_emails()] == [waiting.id]

        clock.advance(seconds=1)
        assert [r.id for r in tracking.get_retryable_emails()] == [waiting.id, later.id]
        assert len(tracking.get_retryable_emails(limit=1)) == 1

    def test_concurrent_claims_have_one_winner(self, tmp_path):
        init_database(f"sqlite:///{tmp_path / 'mailer.db'}")
        try:
            clock = FakeClock()
            tracking = TrackingService(clock=clock)
            record = new_record(tracking)
            fail(tracking, record.id)
            clock.advance(seconds=2)

            barrier = threading.Barrier(2)
            outcomes = []

            def claim():
                barrier.wait()
                try:
                    tracking.retry_failed_email(record.id)
                    outcomes.append("claimed")
                except NotRetryableError:
                    outcomes.append("rejected")

            threads = [threading.Thread(target=claim) for _ in range(2)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            assert sorted(outcomes) == ["claimed", "rejected"]
            assert tracking.get_tracking_by_id(record.id).status == MailStatus.PENDING
        finally:
            close_database()


class TestDeleteAndCleanup:
    def test_soft_delete(self, tracking):
        record = new_record(tracking)

        tracking.delete_tracking(record.id)

        assert tracking.get_tracking_by_id(record.id) is None
        assert tracking.search() == []
        assert tracking.search(TrackingFilters(event=record.event)) == []
        with pytest.raises(TrackingNotFoundError):
            tracking.delete_tracking(record.id)

    def test_hard_delete_after_soft_delete(self, tracking):
        record = new_record(tracking)
        tracking.delete_tracking(record.id)

        tracking.delete_tracking(record.id, hard=True)

        with pytest.raises(TrackingNotFoundError):
            tracking.delete_tracking(record.id, hard=True)

    def test_cleanup_old_records(self, tracking, clock):
        old = new_record(tracking)
        clock.advance(days=91)
        recent = new_record(tracking)

        assert tracking.cleanup_old_records(days_to_keep=90) == 1
        assert tracking.get_tracking_by_id(old.id) is None
        assert tracking.get_tracking_by_id(recent.id) is not None

    def test_cleanup_rejects_bad_window(self, tracking):
        with pytest.raises(TrackingValidationError):
            tracking.cleanup_old_records(days_to_keep=-1)


class TestQueries:
    def test_lookup_by_message_id(self, tracking):
        record = new_record(tracking)
        tracking.mark_as_sent(record.id, "<m1@acme.io>")

        assert tracking.get_tracking_by_message_id("<m1@acme.io>").id == record.id
        assert tracking.get_tracking_by_message_id("<other@acme.io>") is None

    def test_lookup_by_email_event_and_status(self, tracking):
        a = new_record(tracking, recipient="a@b.com")
        new_record(tracking, EmailEvent.USER_REGISTERED, recipient="a@b.com")
        tracking.mark_as_sent(a.id)

        assert len(tracking.get_tracking_by_email("A@B.com")) == 2
        assert [r.id for r in tracking.get_tracking_by_event(EmailEvent.INVENTORY_LOW)] == [a.id]
        assert [r.id for r in tracking.get_tracking_by_status(MailStatus.SENT)] == [a.id]

    def test_search(self, tracking):
        new_record(tracking, recipient="ops@acme.io", campaign="q4")
        new_record(tracking, recipient="ops@other.io")

        assert len(tracking.search()) == 2
        assert [r.recipient for r in tracking.search(TrackingFilters(campaign="q4"))] == ["ops@acme.io"]

    def test_get_tracking_by_id_missing(self, tracking):
        assert tracking.get_tracking_by_id("missing") is None


class TestStats:
    def test_status_stats(self, tracking):
        sent = new_record(tracking)
        tracking.mark_as_sent(sent.id)
        fail(tracking, new_record(tracking).id)
        new_record(tracking)

        stats = tracking.get_stats()

        assert (stats.total, stats.sent, stats.failed, stats.pending) == (3, 1, 1, 1)

    def test_event_stats(self, tracking):
        new_record(tracking)
        new_record(tracking)
        new_record(tracking, EmailEvent.USER_REGISTERED)

        stats = tracking.get_event_stats()

        assert [(s.event, s.count) for s in stats] == [
            (EmailEvent.INVENTORY_LOW, 2),
            (EmailEvent.USER_REGISTERED, 1),
        ]

    def test_daily_stats(self, tracking, clock):
        new_record(tracking)
        clock.advance(days=1)
        new_record(tracking)
        new_record(tracking)

        stats = tracking.get_daily_stats(days=7)

        assert [(s.date, s.count) for s in stats] == [("2025-11-04", 1), ("2025-11-05", 2)]

    def test_daily_stats_rejects_bad_window(self, tracking):
        with pytest.raises(TrackingValidationError):
            tracking.get_daily_stats(days=-5)
