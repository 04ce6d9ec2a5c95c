# FILE: salesdesk/services.py
# DESCRIPTION: Builds the collaborator graph shared by the web app and the scheduler script.

from dataclasses import dataclass
from datetime import timedelta

from salesdesk.config import Settings
from salesdesk.core.clients import ClientRegistry
from salesdesk.core.contracts import ContractEngine
from salesdesk.core.dispatcher import EffectDispatcher
from salesdesk.core.notifications import ActivityLogger, Notifier
from salesdesk.core.proposals import ProposalEngine
from salesdesk.core.reminders import ReminderScheduler, default_policies
from salesdesk.core.tokens import TokenGate
from salesdesk.db.gateway import PersistenceGateway
from salesdesk.db.session import Database
from salesdesk.integrations.email import LogOnlyEmailSender, SmtpEmailSender
from salesdesk.integrations.realtime import WebhookNotificationSink
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.services", "salesdesk.log")


@dataclass
class Services:
    settings: Settings
    database: Database
    gateway: PersistenceGateway
    dispatcher: EffectDispatcher
    notifier: Notifier
    gate: TokenGate
    clients: ClientRegistry
    contracts: ContractEngine
    proposals: ProposalEngine
    scheduler: ReminderScheduler

    def shutdown(self):
        self.scheduler.stop()
        self.dispatcher.shutdown()
        self.database.dispose()


def default_email_sender(settings):
    if not settings.smtp_host:
        logger.warning("SMTP_HOST not set. Outbound email will only be logged.")
        return LogOnlyEmailSender()
    return SmtpEmailSender(
        settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        sender=settings.smtp_sender,
        use_tls=settings.smtp_use_tls,
    )


def build_services(settings=None, email_sender=None, sinks=None, clock=None, activity_backoff_seconds=1.0,
                   renderer=None):
    settings = settings or Settings.from_env()

    database = Database(settings.database_url)
    database.create_all()
    gateway = PersistenceGateway(database)

    dispatcher = EffectDispatcher(max_workers=settings.dispatch_workers)
    activity_logger = ActivityLogger(
        gateway, max_attempts=settings.activity_log_attempts, backoff_seconds=activity_backoff_seconds,
    )
    notifier = Notifier(gateway, dispatcher, email_sender or default_email_sender(settings), activity_logger)
    if sinks is None:
        sinks = [WebhookNotificationSink(settings.realtime_webhook_url, disabled=settings.disable_webhooks)]
    for sink in sinks:
        notifier.register_sink(sink)

    gate = TokenGate(gateway, clock=clock)
    clients = ClientRegistry(gateway, notifier, clock=gate.clock)
    contracts = ContractEngine(gateway, notifier, settings, gate, clients=clients, renderer=renderer, clock=clock)
    proposals = ProposalEngine(
        gateway, notifier, settings, gate, contracts=contracts, clients=clients, renderer=renderer, clock=clock,
    )

    scheduler = ReminderScheduler(
        gateway,
        notifier,
        default_policies(settings),
        clock=clock,
        extra_jobs={
            "expiry": (timedelta(minutes=settings.expiry_sweep_interval_minutes), proposals.expire_overdue),
        },
    )

    return Services(
        settings=settings,
        database=database,
        gateway=gateway,
        dispatcher=dispatcher,
        notifier=notifier,
        gate=gate,
        clients=clients,
        contracts=contracts,
        proposals=proposals,
        scheduler=scheduler,
    )
