"""
Email templates.

This module provides templates for every email the notification service
sends. Templates support variable substitution using Python's string
formatting.

Design decisions:
- Templates are stored as simple strings with {variable} placeholders
- Each template has a plain-text body; the HTML part wraps the same text,
  with every substituted value escaped
- Templates are organized by email kind

Rich HTML layouts are out of scope; in a production system they would be
rendered with a proper templating engine (Jinja2).
"""

import html
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from shared.models import SubscriptionType


class EmailKind(str, Enum):
    """One entry per email the notification service can send."""
    BOOK_BORROWED = "book_borrowed"
    BOOK_RETURNED = "book_returned"
    BOOK_RETURNED_OVERDUE = "book_returned_overdue"
    USER_DELETED = "user_deleted"
    NEW_BOOK = "new_book"


@dataclass
class EmailTemplate:
    """A subject line and plain-text body, rendered to (subject, html, text)."""
    kind: EmailKind
    subject: str
    text_body: str

    def render(self, **kwargs) -> tuple[str, str, str]:
        """
        Render the template with provided variables.

        Returns:
            Tuple of (subject, html, text)
        """
        subject = self.subject.format(**kwargs)
        text = self.text_body.format(**kwargs)
        escaped = {k: html.escape(str(v)) for k, v in kwargs.items()}
        paragraphs = "".join(
            f"<p>{block.replace(chr(10), '<br>')}</p>"
            for block in self.text_body.format(**escaped).strip().split("\n\n")
        )
        body = (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\"></head>"
            f"<body>{paragraphs}</body></html>"
        )
        return subject, body, text


_FOOTER = """
---
Library Management System
This is an automated email. Please do not reply.
"""


# =============================================================================
# Template Definitions
# =============================================================================

TEMPLATES: dict[EmailKind, EmailTemplate] = {

    EmailKind.BOOK_BORROWED: EmailTemplate(
        kind=EmailKind.BOOK_BORROWED,
        subject="📚 Book Borrowed: {book_title}",
        text_body="""Book Successfully Borrowed!

Dear {member_name},

We're pleased to confirm that you have successfully borrowed a book from our library.

Book Details:
- Book Title: {book_title}
- Borrow ID: {borrow_id}
- Due Date: {due_date}

Please return the book on or before the due date to avoid late fees.
""" + _FOOTER,
    ),

    EmailKind.BOOK_RETURNED: EmailTemplate(
        kind=EmailKind.BOOK_RETURNED,
        subject="✅ Book Returned: {book_title}",
        text_body="""Book Successfully Returned!

Dear {member_name},

We have received your returned book. Thank you for returning it on time!

Book Details:
- Book Title: {book_title}
- Borrow ID: {borrow_id}
- Return Date: {return_date}
""" + _FOOTER,
    ),

    EmailKind.BOOK_RETURNED_OVERDUE: EmailTemplate(
        kind=EmailKind.BOOK_RETURNED_OVERDUE,
        subject="⚠️ Book Returned (Overdue): {book_title}",
        text_body="""Book Returned (Overdue)

Dear {member_name},

We have received your returned book. Thank you for returning it to our library.

Book Details:
- Book Title: {book_title}
- Borrow ID: {borrow_id}
- Return Date: {return_date}

This book was returned after the due date. Please check with the library regarding any applicable late fees.
""" + _FOOTER,
    ),

    EmailKind.USER_DELETED: EmailTemplate(
        kind=EmailKind.USER_DELETED,
        subject="⚠️ Account Deleted: Library Management System",
        text_body="""Account Deleted - Library Management System

Dear {username},

Your account on the Library Management System has been deleted by an administrator.

Account Details:
- Username: {username}
- Email: {email}
- Deletion Date: {deleted_on}

If you believe this was done in error, please contact the library administrator immediately.
""" + _FOOTER,
    ),

    EmailKind.NEW_BOOK: EmailTemplate(
        kind=EmailKind.NEW_BOOK,
        subject="📚 New Book Added: {book_title}",
        text_body="""New Book Added - Library Management System

Dear {user_name},

Great news! A new book has been added to the library that matches your subscription preferences.

Book Details:
- Title: {book_title}
- Author: {book_author}
- Category: {book_category}

{subscription_reason}
""" + _FOOTER,
    ),
}


# =============================================================================
# Template Access Functions
# =============================================================================

def get_template(kind: EmailKind) -> Optional[EmailTemplate]:
    """Get a template by email kind."""
    return TEMPLATES.get(kind)


def render_email(kind: EmailKind, **context) -> tuple[str, str, str]:
    """
    Render an email.

    Returns:
        (subject, html, text)

    Raises:
        ValueError: If no template exists for ``kind``
    """
    template = get_template(kind)
    if not template:
        raise ValueError(f"No template found for email kind: {kind}")
    return template.render(**context)


def subscription_reason(
    subscription_type: str,
    category_name: Optional[str] = None,
) -> str:
    """Explain which subscription caused a new-book email."""
    if subscription_type == SubscriptionType.BOTH:
        return (
            f'You\'re receiving this because you\'ve subscribed to both the "{category_name}" '
            "category and this book."
        )
    if subscription_type == SubscriptionType.BOOK:
        return "You're receiving this because you've subscribed to notifications about this book."
    return f'You\'re receiving this because you\'ve subscribed to the "{category_name}" category.'
