"""
Async-safe email sender.

smtplib is blocking; every send goes through loop.run_in_executor so the
event loop is never blocked waiting for SMTP.
"""
import asyncio
import html
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from wishdraw.core.config import settings
from wishdraw.core.i18n import normalize_locale, translate

logger = logging.getLogger("wishdraw.mailer")


_BUTTON = (
    '<p style="text-align:center;margin:28px 0;">'
    '<a href="{link}" style="display:inline-block;padding:12px 26px;background:#b91c1c;'
    'color:#fff;text-decoration:none;border-radius:6px;font-weight:600;">{text}</a></p>'
)

_LAYOUT = """<!DOCTYPE html>
<html lang="{lang}">
<head><meta charset="UTF-8"><title>{title}</title></head>
<body style="margin:0;padding:24px 0;background:#fef2f2;font-family:Arial,Helvetica,sans-serif;">
  <div style="max-width:560px;margin:0 auto;background:#fff;border-radius:12px;padding:36px;border-top:6px solid #15803d;">
    <p style="margin:0 0 8px;color:#15803d;font-weight:700;text-align:center;">{app_name}</p>
    <h2 style="margin:0 0 20px;color:#111827;text-align:center;">{title}</h2>
    <div style="color:#374151;font-size:16px;line-height:1.6;">{content}</div>
    {button}
    <p style="margin:32px 0 0;color:#9ca3af;font-size:12px;text-align:center;">{footer}</p>
  </div>
</body>
</html>"""


def _get_base_html_template(
    title: str,
    content: str,
    footer: str,
    button_text: str | None = None,
    button_link: str | None = None,
    locale: str = "en",
) -> str:
    """
    Wrap ``content`` in the shared mail layout.

    ``content`` is trusted markup built by the caller; everything else is
    escaped here.
    """
    button = ""
    if button_text and button_link:
        button = _BUTTON.format(link=html.escape(button_link, quote=True), text=html.escape(button_text))
    return _LAYOUT.format(
        lang=html.escape(locale),
        title=html.escape(title),
        app_name=html.escape(settings.app_name),
        content=content,
        button=button,
        footer=html.escape(footer),
    )


def _build_message(to_email: str, subject: str, text_body: str, html_body: str) -> MIMEMultipart:
    message = MIMEMultipart("alternative")
    message["Subject"] = subject
    message["From"] = settings.smtp_from_email
    message["To"] = to_email
    message.attach(MIMEText(text_body, "plain", "utf-8"))
    message.attach(MIMEText(html_body, "html", "utf-8"))
    return message


def _send_sync(message: MIMEMultipart) -> None:
    """Blocking SMTP send; run it in an executor."""
    if settings.smtp_use_tls:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            server.starttls()
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)
    else:
        with smtplib.SMTP_SSL(settings.smtp_host, settings.smtp_port, timeout=15) as server:
            if settings.smtp_username:
                server.login(settings.smtp_username, settings.smtp_password)
            server.send_message(message)


async def send_email(to_email: str, subject: str, text_body: str, html_body: str) -> None:
    """Send one message. SMTP and network errors propagate to the caller."""
    if not settings.smtp_host:
        logger.info("SMTP not configured. Email for %s would be sent: %s", to_email, subject)
        return

    if not settings.email_notifications_enabled:
        logger.info("Email notifications disabled. Skipping email to %s: %s", to_email, subject)
        return

    message = _build_message(to_email, subject, text_body, html_body)
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(None, _send_sync, message)
    logger.info("Email sent to %s subject=%r", to_email, subject)


def render_secret_santa_email(
    receiver_name: str,
    group_name: str,
    group_url: str,
    locale: str | None = None,
) -> tuple[str, str, str]:
    """Return ``(subject, text_body, html_body)`` for the giver's draw email."""
    lang = normalize_locale(locale)
    t = translate(lang, "secret_santa_email", group_name=group_name)

    text_body = (
        f"{t['heading']}\n\n"
        f"{t['intro']}\n"
        f"{receiver_name}\n\n"
        f"{t['outro']}\n"
        f"{group_url}"
    )

    html_content = f'''
    <p style="text-align: center; margin: 0 0 20px 0;">{html.escape(t['intro'])}</p>
    <div style="background-color: #f8fafc; border-radius: 12px; padding: 30px; margin: 20px 0; text-align: center;">
        <h2 style="margin: 0; color: #1e293b; font-size: 28px;">{html.escape(receiver_name)}</h2>
    </div>
    <p style="text-align: center; color: #64748b;">{html.escape(t['outro'])}</p>
    '''

    html_body = _get_base_html_template(
        title=t["heading"],
        content=html_content,
        footer=t["footer"],
        button_text=t["button"],
        button_link=group_url,
        locale=lang,
    )
    return t["subject"], text_body, html_body


async def send_secret_santa_email(
    to_email: str,
    receiver_name: str,
    group_name: str,
    group_url: str,
    locale: str | None = None,
) -> None:
    subject, text_body, html_body = render_secret_santa_email(receiver_name, group_name, group_url, locale)
    await send_email(to_email, subject, text_body, html_body)
