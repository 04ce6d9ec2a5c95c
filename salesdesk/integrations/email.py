# File: salesdesk/integrations/email.py

import smtplib
from email.message import EmailMessage

from jinja2 import Environment, StrictUndefined

from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.integrations.email", "salesdesk.log")

_env = Environment(undefined=StrictUndefined, autoescape=False, trim_blocks=True, lstrip_blocks=True)

TEMPLATES = {
    "proposal_to_client": (
        "Your proposal {{ proposal_number }}",
        "Hello {{ client_name }},\n\n"
        "Please review proposal {{ proposal_number }}. It is valid until {{ expires_at }}.\n\n"
        "{% if pdf_url %}Proposal document: {{ pdf_url }}\n\n{% endif %}"
        "Accept: {{ accept_url }}\n"
        "Decline: {{ decline_url }}\n",
    ),
    "proposal_approved": (
        "Proposal Approved - Ready to Send",
        "Your proposal {{ proposal_number }} for {{ client_name }} has been approved. "
        "You can now send it to the client.\n",
    ),
    "proposal_disapproved": (
        "Proposal Disapproved",
        "Your proposal {{ proposal_number }} has been disapproved. Reason: {{ reason }}\n",
    ),
    "proposal_response": (
        "Client {{ response }} proposal {{ proposal_number }}",
        "{{ client_name }} has {{ response }} proposal {{ proposal_number }}.\n",
    ),
    "contract_to_client": (
        "Your contract is ready for signature",
        "Hello {{ client_name }},\n\n"
        "Your contract is attached at {{ contract_url }}.\n"
        "Upload the signed copy here: {{ submit_url }}\n",
    ),
    "contract_signed": (
        "Contract Signed",
        "{{ client_name }} ({{ company_name }}) has signed contract {{ contract_number }}.\n",
    ),
    "event_reminder": (
        "Reminder: {{ title }} {{ lead_time }}",
        "Hi {{ user_name }},\n\n"
        "{{ title }} is scheduled for {{ scheduled_date }} ({{ lead_time }}).\n"
        "{% if company_name %}Client: {{ company_name }}\n{% endif %}",
    ),
}


def render_email(template_name, **context):
    """Return ``(subject, body)`` for a named template."""
    subject, body = TEMPLATES[template_name]
    return _env.from_string(subject).render(**context), _env.from_string(body).render(**context)


class EmailSender:
    """Outbound email transport."""

    def send(self, to, subject, body):
        raise NotImplementedError


class SmtpEmailSender(EmailSender):
    def __init__(self, host, port=587, username="", password="", sender="no-reply@localhost", use_tls=True, timeout=10):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_tls = use_tls
        self.timeout = timeout

    def send(self, to, subject, body):
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as smtp:
            if self.use_tls:
                smtp.starttls()
            if self.username:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        logger.info("Email '%s' sent to %s", subject, to)


class LogOnlyEmailSender(EmailSender):
    """Used when no SMTP host is configured."""

    def send(self, to, subject, body):
        logger.info("Email disabled - would have sent '%s' to %s", subject, to)
