"""
mailer.py — Out-of-band delivery of verification codes and reset links
======================================================================
Messages go out over SMTP when ``EXHIBIT_SMTP_HOST`` is set. Without it
the message is written to the log so a developer can copy the code.
Failures are logged and reported as ``False``; they never raise into
the request that triggered them.
"""
from __future__ import annotations

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import List

from .config import settings

logger = logging.getLogger("exhibit.mailer")


def _send(to_addr: str, subject: str, body_lines: List[str]) -> bool:
    if not settings.smtp_enabled:
        logger.info("SMTP not configured; mail to %s not sent.\nSubject: %s\n%s",
                    to_addr, subject, "\n".join(body_lines))
        return True

    try:
        msg = MIMEMultipart()
        msg["From"] = settings.mail_from
        msg["To"] = to_addr
        msg["Subject"] = subject
        msg.attach(MIMEText("\n".join(body_lines), "plain"))

        server = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=10)
        try:
            if settings.smtp_use_tls:
                server.starttls()
            if settings.smtp_username and settings.smtp_password:
                server.login(settings.smtp_username, settings.smtp_password)
            server.sendmail(settings.mail_from, [to_addr], msg.as_string())
        finally:
            server.quit()

        logger.info("Mail %r sent to %s", subject, to_addr)
        return True
    except (smtplib.SMTPException, OSError) as exc:
        logger.warning("Mail %r to %s failed: %s", subject, to_addr, exc)
        return False


def send_verification_code(email: str, code: str, purpose: str = "verify") -> bool:
    if purpose == "reset":
        subject = "Your password reset code"
        intro = "Use this code to reset your password:"
    else:
        subject = "Verify your email address"
        intro = "Use this code to verify your email address:"
    return _send(email, subject, [
        intro,
        "",
        f"    {code}",
        "",
        f"The code expires in {settings.verification_code_ttl_minutes} minutes.",
        "If you did not request this, you can ignore this message.",
    ])


def send_password_reset_link(email: str, token: str) -> bool:
    link = f"{settings.public_base_url.rstrip('/')}/reset-password?token={token}"
    return _send(email, "Reset your password", [
        "Someone asked to reset the password for your account.",
        "",
        f"    {link}",
        "",
        f"The link expires in {settings.reset_token_ttl_minutes} minutes and works once.",
        "If you did not request this, you can ignore this message.",
    ])
