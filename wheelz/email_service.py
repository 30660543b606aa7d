# wheelz/email_service.py
from __future__ import annotations
import os
import logging
import smtplib
from typing import Optional, Iterable, Union, List
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

logger = logging.getLogger(__name__)

# =========================
# SMTP Settings
# =========================
SMTP_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
SMTP_PORT = int(os.getenv("SMTP_PORT", 587))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
FROM_EMAIL = os.getenv("FROM_EMAIL", "") or SMTP_USER
FROM_NAME = os.getenv("FROM_NAME", "WheelZOnRent")
SMTP_TIMEOUT = float(os.getenv("SMTP_TIMEOUT", 20))


def _normalize_list(value: Optional[Union[str, Iterable[str]]]) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = [value]
    return [v.strip() for v in value if v and v.strip()]


def send_email(
    to: Union[str, Iterable[str]],
    subject: str,
    text_body: str,
    html_body: Optional[str] = None,
    reply_to: Optional[str] = None,
) -> bool:
    """Send one message over SMTP+STARTTLS. Returns False instead of raising."""
    if not SMTP_USER or not SMTP_PASSWORD:
        logger.error("SMTP credentials missing, not sending %r", subject)
        return False

    recipients = _normalize_list(to)
    if not recipients:
        logger.warning("no recipient for %r", subject)
        return False

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{FROM_NAME} <{FROM_EMAIL}>"
    msg["To"] = ", ".join(recipients)
    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(text_body or "", "plain", "utf-8"))
    if html_body:
        msg.attach(MIMEText(html_body, "html", "utf-8"))

    try:
        with smtplib.SMTP(SMTP_HOST, SMTP_PORT, timeout=SMTP_TIMEOUT) as server:
            server.starttls()
            server.login(SMTP_USER, SMTP_PASSWORD)
            server.sendmail(FROM_EMAIL, recipients, msg.as_string())
    except (smtplib.SMTPException, OSError) as e:
        logger.warning("SMTP error sending %r to %s: %s", subject, recipients, e)
        return False

    logger.info("email %r sent to %s", subject, recipients)
    return True


# Manual smoke test (SMTP_* must be exported)
if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    ok = send_email(
        to=os.getenv("TEST_EMAIL_TO") or FROM_EMAIL,
        subject="SMTP TEST - WheelZOnRent",
        text_body="SMTP works",
    )
    print("Test send:", ok)
