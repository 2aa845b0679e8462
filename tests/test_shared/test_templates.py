"""
Tests for email templates.

These tests verify that templates render correctly with variable substitution.
"""

import pytest

from shared.models import SubscriptionType
from shared.templates import (
    TEMPLATES,
    EmailKind,
    EmailTemplate,
    get_template,
    render_email,
    subscription_reason,
)


class TestEmailTemplate:
    """Tests for EmailTemplate class."""

    def test_render(self):
        """Test rendering subject, html and text with variables."""
        template = EmailTemplate(
            kind=EmailKind.BOOK_BORROWED,
            subject="Borrowed {book_title}",
            text_body="Hi {member_name}, enjoy {book_title}!",
        )

        subject, html, text = template.render(book_title="Cosmos", member_name="Ada")

        assert subject == "Borrowed Cosmos"
        assert text == "Hi Ada, enjoy Cosmos!"
        assert "Ada" in html
        assert html.startswith("<!DOCTYPE html>")

    def test_html_escapes_values(self):
        template = EmailTemplate(kind=EmailKind.NEW_BOOK, subject="{book_title}", text_body="{book_title}")

        _, html, text = template.render(book_title="<script>x</script>")

        assert "<script>" not in html
        assert "&lt;script&gt;" in html
        assert text == "<script>x</script>"

    def test_missing_variable_raises(self):
        template = EmailTemplate(kind=EmailKind.NEW_BOOK, subject="{book_title}", text_body="{book_author}")

        with pytest.raises(KeyError):
            template.render(book_title="Cosmos")


class TestTemplateRegistry:
    """Tests for the registered templates."""

    def test_every_kind_has_a_template(self):
        assert set(TEMPLATES) == set(EmailKind)

    def test_get_template(self):
        template = get_template(EmailKind.USER_DELETED)

        assert template is not None
        assert template.kind == EmailKind.USER_DELETED

    def test_render_borrowed_email(self):
        subject, _, text = render_email(
            EmailKind.BOOK_BORROWED,
            member_name="Ada",
            book_title="Cosmos",
            borrow_id="BRW-1",
            due_date="2024-02-01",
        )

        assert subject == "📚 Book Borrowed: Cosmos"
        assert "Dear Ada" in text
        assert "BRW-1" in text
        assert "2024-02-01" in text

    def test_render_overdue_return(self):
        subject, _, text = render_email(
            EmailKind.BOOK_RETURNED_OVERDUE,
            member_name="Ada",
            book_title="Cosmos",
            borrow_id="BRW-1",
            return_date="2024-03-01",
        )

        assert subject == "⚠️ Book Returned (Overdue): Cosmos"
        assert "after the due date" in text

    def test_render_unknown_kind(self):
        with pytest.raises(ValueError):
            render_email("not_a_kind")


class TestSubscriptionReason:
    def test_category(self):
        reason = subscription_reason(SubscriptionType.CATEGORY, "Science")
        assert '"Science" category' in reason

    def test_book(self):
        reason = subscription_reason(SubscriptionType.BOOK)
        assert "this book" in reason

    def test_both(self):
        reason = subscription_reason("both", "Science")
        assert "both" in reason
        assert "Science" in reason
