# teamhub/services/email_service.py
from flask import current_app, render_template
from flask_mail import Message
from jinja2 import TemplateNotFound
from ..extensions import mail
import logging

log = logging.getLogger(__name__)


def send_email(*, to, subject, template, **ctx) -> bool:
    """Render ``email/<template>`` (plus its .txt twin when present) and send it.

    Mail is a side channel: failures are logged and reported as False,
    never raised into the request that produced the notification.
    """
    if not to:
        log.warning("send_email: missing recipient")
        return False
    recipients = [to] if isinstance(to, str) else list(to)

    sender = current_app.config.get("MAIL_DEFAULT_SENDER") or current_app.config.get("MAIL_USERNAME")
    if not sender:
        log.error("send_email: no sender configured")
        return False

    try:
        html = render_template(f"email/{template}", **ctx)
        base = template.rsplit(".", 1)[0]
        try:
            txt = render_template(f"email/{base}.txt", **ctx)
        except TemplateNotFound:
            txt = None

        msg = Message(subject=subject, recipients=recipients, sender=sender)
        if txt:
            msg.body = txt
        msg.html = html

        if current_app.config.get("MAIL_SUPPRESS_SEND"):
            log.info("[MAIL_SUPPRESS_SEND=1] would send: %s | %s", recipients, subject)
            return True

        mail.send(msg)
    except Exception as e:
        log.exception("send_email failed: %s", e)
        return False

    log.info("Email sent to %s | subject=%s", recipients, subject)
    return True
