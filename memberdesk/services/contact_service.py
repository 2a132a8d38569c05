"""
Contact Service — the public website's contact form.

Validates the submission, stores it as a ContactMessage, then forwards it
by e-mail to CONTACT_EMAIL with every user-supplied value HTML-escaped.
"""

import html
import logging

from email_validator import EmailNotValidError, validate_email
from flask import current_app

from memberdesk.core.exceptions import ValidationError
from memberdesk.models import db
from memberdesk.models.contact import ContactMessage
from memberdesk.services.email_service import EmailService

logger = logging.getLogger(__name__)

REQUIRED_MESSAGE = "Les champs nom, email et message sont requis"
INVALID_EMAIL_MESSAGE = "Email invalide"


def _field(data: dict, name: str) -> str:
    value = data.get(name)
    return value.strip() if isinstance(value, str) else ""


def build_email(name: str, email: str, company: str, message: str) -> tuple[str, str, str]:
    """Return (subject, html_body, text_body) for a contact submission."""
    safe_name = html.escape(name)
    safe_email = html.escape(email)
    safe_company = html.escape(company) if company else ""
    safe_message = html.escape(message).replace("\n", "<br>")

    subject = f"Nouveau message de contact - {name}" + (f" ({company})" if company else "")
    company_row = f"<p><strong>Entreprise:</strong> {safe_company}</p>" if safe_company else ""
    html_body = f"""
        <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
          <h2 style="color: #000; border-bottom: 2px solid #000; padding-bottom: 10px;">
            Nouveau message de contact
          </h2>
          <div style="margin-top: 20px;">
            <p><strong>Nom:</strong> {safe_name}</p>
            <p><strong>Email:</strong> <a href="mailto:{safe_email}">{safe_email}</a></p>
            {company_row}
          </div>
          <div style="margin-top: 30px;">
            <h3 style="color: #000; margin-bottom: 10px;">Message:</h3>
            <div style="background-color: #f5f5f5; padding: 15px; border-radius: 5px; white-space: pre-wrap;">
              {safe_message}
            </div>
          </div>
        </div>
    """
    text_body = (
        "Nouveau message de contact\n\n"
        f"Nom: {name}\nEmail: {email}\n"
        + (f"Entreprise: {company}\n" if company else "")
        + f"\nMessage:\n{message}\n"
    )
    return subject, html_body, text_body


def submit_contact_message(data: dict) -> ContactMessage:
    """Store and forward one submission. Returns the stored row.

    Raises:
        ValidationError: missing field or malformed e-mail address.
    """
    name, email, message = _field(data, "name"), _field(data, "email"), _field(data, "message")
    company = _field(data, "company")
    if not name or not email or not message:
        raise ValidationError(REQUIRED_MESSAGE)
    try:
        email = validate_email(email, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        raise ValidationError(INVALID_EMAIL_MESSAGE, details={"email": "invalid"}) from exc

    record = ContactMessage(name=name, email=email, company=company or None, message=message)
    db.session.add(record)
    db.session.flush()

    subject, html_body, text_body = build_email(name, email, company, message)
    result = EmailService.send(
        to_email=current_app.config.get("CONTACT_EMAIL", "prospect@capisen.fr"),
        subject=subject,
        html_body=html_body,
        text_body=text_body,
        reply_to=email,
    )
    record.delivery_status = result.status
    record.delivery_error = result.error
    db.session.commit()

    logger.info("Contact message %s stored (%s)", record.id, result.status)
    return record
