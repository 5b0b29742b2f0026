"""Test helper utilities for mailer service tests."""

from .fakes import SAMPLE_PAYLOADS, FakeClock, FakeMailer, SentMail

__all__ = ["FakeClock", "FakeMailer", "SentMail", "SAMPLE_PAYLOADS"]
