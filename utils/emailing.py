import os
import smtplib
import uuid
from datetime import datetime
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from typing import Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape, TemplateNotFound

from core.config import SMTP_HOST, SMTP_PORT, SMTP_USER, SMTP_PASS, MAIL_FROM, APP_NAME, APP_URL, logger
from core.errors import EmailDispatchFailure
from utils.form_validation import validate_email_format

# Jinja env
_templates_dir = os.path.join(os.path.dirname(__file__), "..", "templates")
_jinja_env = Environment(
    loader=FileSystemLoader(_templates_dir),
    autoescape=select_autoescape(["html", "xml"]),
)

EMAIL_BRAND_BG = os.getenv("EMAIL_BRAND_BG", "#F4F1EA")
EMAIL_BRAND_ACCENT = os.getenv("EMAIL_BRAND_ACCENT", "#1B4F72")
EMAIL_LOGO_URL = os.getenv("EMAIL_LOGO_URL", (APP_URL + "/sargood-logo.png") if APP_URL else "")


def render_email(template_name: str, **context) -> str:
    base = {
        "app_name": APP_NAME,
        "app_url": APP_URL,
        "brand_bg": EMAIL_BRAND_BG,
        "brand_accent": EMAIL_BRAND_ACCENT,
        "logo_url": EMAIL_LOGO_URL,
    }
    base.update(context or {})
    return _jinja_env.get_template(template_name).render(**base)


def send_email_smtp(
    to_addr: str,
    subject: str,
    html: str,
    text: Optional[str] = None,
    from_addr: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    try:
        if not SMTP_HOST or not SMTP_PASS or not MAIL_FROM:
            logger.error("SMTP not configured; cannot send email")
            return False
        sender = (from_addr or MAIL_FROM).strip()
        display_from = f"{APP_NAME} <{sender}>" if APP_NAME and "<" not in sender else sender
        domain = sender.split("@")[-1].strip(">") if "@" in sender else "localhost"

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = display_from
        msg["To"] = to_addr
        msg["Message-ID"] = f"<{uuid.uuid4()}@{domain}>"
        msg["Date"] = datetime.utcnow().strftime("%a, %d %b %Y %H:%M:%S +0000")
        if reply_to:
            msg["Reply-To"] = reply_to
        if not text:
            text = "Open this message in an HTML-capable email client."
        msg.attach(MIMEText(text, "plain", _charset="utf-8"))
        msg.attach(MIMEText(html or "", "html", _charset="utf-8"))

        with smtplib.SMTP(SMTP_HOST, SMTP_PORT) as server:
            server.starttls()
            if SMTP_USER or SMTP_PASS:
                server.login(SMTP_USER, SMTP_PASS)
            server.sendmail(sender, [to_addr], msg.as_string())
        return True
    except Exception as ex:
        logger.exception(f"SMTP send failed: {ex}")
        return False


def send_templated_email(recipient: str, subject: str, template_ref: str, data: dict) -> None:
    """
    Mail capability used by the booking engine.
    Renders templates/emails/<template_ref>.html with `data` and sends it.
    Raises EmailDispatchFailure when the recipient is invalid or the transport refuses.
    """
    ok, err = validate_email_format(recipient or "")
    if not ok:
        raise EmailDispatchFailure(recipient, err)
    try:
        html = render_email(f"emails/{template_ref}.html", **(data or {}))
    except TemplateNotFound:
        raise EmailDispatchFailure(recipient, f"unknown email template '{template_ref}'")
    if not send_email_smtp(recipient, subject, html):
        raise EmailDispatchFailure(recipient, "transport refused message")
    logger.info(f"[email] sent '{template_ref}' to {recipient}")
