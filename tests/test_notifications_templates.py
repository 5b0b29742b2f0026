"""Unit tests for notification template rendering.

Tests the TemplateRenderer for:
- Every catalog template rendering with a handler-built context
- HTML auto-escaping
- Strict undefined variable detection
- Report defaults and custom filters
"""

import pytest

from mailer_service.domain.catalog import MAIL_TEMPLATES, get_template
from mailer_service.domain.models import EmailEvent
from mailer_service.notifications.handlers import default_handlers
from mailer_service.notifications.models import NotificationTemplateError
from mailer_service.notifications.templates import TemplateRenderer, count_of, format_money

from tests.helpers import SAMPLE_PAYLOADS


@pytest.fixture(scope="module")
def renderer():
    return TemplateRenderer()


def handler_context(event, payload, recipient="ops@acme.io"):
    """Context exactly as the owning handler would build it."""
    handler = next(h for h in default_handlers(None, None) if h.can_handle(event))
    return handler.build_context(event, recipient, payload)


@pytest.mark.parametrize("event", list(EmailEvent), ids=lambda e: e.value)
def test_every_catalog_template_renders(renderer, event):
    template_id = get_template(event).template
    context = handler_context(event, SAMPLE_PAYLOADS[event])

    rendered = renderer.render(template_id, context)

    assert rendered["html_body"].strip()
    assert rendered["text_body"].strip()
    assert "<html" in rendered["html_body"].lower()


def test_every_catalog_template_exists(renderer):
    missing = [entry.template for entry in MAIL_TEMPLATES.values() if not renderer.has_template(entry.template)]

    assert missing == []


def test_has_template_false_for_unknown(renderer):
    assert renderer.has_template("inventory/does-not-exist") is False


def test_context_values_are_interpolated(renderer):
    context = handler_context(EmailEvent.INVENTORY_LOW, SAMPLE_PAYLOADS[EmailEvent.INVENTORY_LOW])

    rendered = renderer.render("inventory/stock-low", context)

    for body in rendered.values():
        assert "Widget" in body
        assert "3" in body
        assert "Bodega 1" in body


def test_register_template_uses_recipient_address(renderer):
    context = handler_context(EmailEvent.USER_REGISTERED, {}, recipient="a@b.com")

    rendered = renderer.render("auth/register-success", context)

    assert "a@b.com" in rendered["text_body"]


def test_html_is_autoescaped(renderer):
    context = {"product": "<script>alert(1)</script>", "quantity": 1, "location": "Bodega & Co"}

    rendered = renderer.render("inventory/stock-low", context)

    assert "<script>" not in rendered["html_body"]
    assert "&lt;script&gt;" in rendered["html_body"]
    assert "Bodega &amp; Co" in rendered["html_body"]


def test_missing_variable_raises(renderer):
    with pytest.raises(NotificationTemplateError) as exc_info:
        renderer.render("inventory/stock-low", {"product": "Widget"})

    assert "inventory/stock-low" in str(exc_info.value)
    assert exc_info.value.code == "TEMPLATE_RENDER"


def test_missing_template_raises(renderer):
    with pytest.raises(NotificationTemplateError, match="inventory/nope"):
        renderer.render("inventory/nope", {})


def test_daily_summary_defaults_render_as_zero(renderer):
    payload = {"name": "Ana", "date": "2025-11-03", "summary": "Sin movimiento"}
    context = handler_context(EmailEvent.REPORT_DAILY_SUMMARY, payload)

    text = renderer.render("reports/daily-summary", context)["text_body"]

    assert "0.00" in text
    assert "Sin movimiento" in text


def test_custom_report_optional_link(renderer):
    base = {"name": "Ana", "reportName": "Rotación"}
    without_link = renderer.render(
        "reports/custom-generated", handler_context(EmailEvent.REPORT_CUSTOM_GENERATED, base)
    )
    with_link = renderer.render(
        "reports/custom-generated",
        handler_context(
            EmailEvent.REPORT_CUSTOM_GENERATED, {**base, "reportLink": "https://app.ally360.com/r/1"}
        ),
    )

    assert "https://app.ally360.com/r/1" not in without_link["text_body"]
    assert "https://app.ally360.com/r/1" in with_link["text_body"]


def test_monthly_summary_lists_top_products(renderer):
    context = handler_context(
        EmailEvent.REPORT_MONTHLY_SUMMARY, SAMPLE_PAYLOADS[EmailEvent.REPORT_MONTHLY_SUMMARY]
    )

    text = renderer.render("reports/monthly-performance", context)["text_body"]

    assert "Widget" in text
    assert "Gadget" in text


class TestFilters:
    def test_format_money(self):
        assert format_money(1520.5) == "1,520.50"
        assert format_money("12") == "12.00"
        assert format_money("n/a") == "n/a"

    def test_count_of(self):
        assert count_of(["a", "b"]) == 2
        assert count_of(7) == 7
        assert count_of([]) == 0
