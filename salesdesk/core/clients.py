# ------------------------------------------------------------------------
# File: clients.py
# Location: salesdesk/core/clients.py
# Description:
#     Client onboarding, run as background work after an accepted proposal
#     that needs no contract, or after a contract is signed. A client is
#     identified by (email, company name); the unique constraint on that
#     pair is what keeps two concurrent onboardings from creating two rows.
# ------------------------------------------------------------------------

from sqlalchemy.exc import IntegrityError

from salesdesk.core.content import parse_proposal_content
from salesdesk.db.models import Client, Contract, Inquiry, Proposal
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.clients", "salesdesk.log")


class ClientRegistry:
    def __init__(self, gateway, notifier, clock):
        self.gateway = gateway
        self.notifier = notifier
        self.clock = clock

    def ensure_client(self, email, company_name, contact_person, created_by=None, **details):
        """Return ``(client, created)`` for the (email, company) pair, creating it at most once."""
        email = email.strip().lower()
        existing = self._find(email, company_name)
        if existing is not None:
            return existing, False
        try:
            client = self.gateway.insert(Client(
                email=email,
                company_name=company_name,
                contact_person=contact_person,
                created_by=created_by,
                phone=details.get("phone") or "",
                address=details.get("address") or "",
                industry=details.get("industry") or "",
            ))
        except IntegrityError:
            # Lost the race to a concurrent onboarding of the same client.
            logger.info("Client %s / %s already created concurrently", email, company_name)
            return self._find(email, company_name), False
        logger.info("Client %s created for %s / %s", client.id, email, company_name)
        return client, True

    def _find(self, email, company_name):
        return self.gateway.select_one(Client, Client.email == email, Client.company_name == company_name)

    def onboard_from_proposal(self, proposal_id, sales_user_id, metadata=None):
        """Accepted proposal whose service needs no contract: create the client directly."""
        proposal = self.gateway.read(Proposal, proposal_id)
        if proposal is None:
            logger.warning("Proposal %s vanished before onboarding", proposal_id)
            return None
        inquiry = self.gateway.read(Inquiry, proposal.inquiry_id)
        client, created = self._ensure_from(proposal, inquiry, sales_user_id)
        if client is None:
            return None

        self._mark_onboarded(inquiry)
        self.notifier.dispatch(self.notifier.activity_effect(
            "client_created_from_proposal" if created else "client_linked_from_proposal",
            "client", client.id, metadata,
            user_id=sales_user_id,
            details={"proposalId": proposal_id, "inquiryId": proposal.inquiry_id, "skipContract": True},
        ))
        return client

    def onboard_from_contract(self, contract_id):
        """Signed contract: create (or find) the client and link it to the contract."""
        contract = self.gateway.read(Contract, contract_id)
        if contract is None:
            logger.warning("Contract %s vanished before onboarding", contract_id)
            return None
        proposal = self.gateway.read(Proposal, contract.proposal_id)
        inquiry = self.gateway.read(Inquiry, proposal.inquiry_id) if proposal else None
        client, created = self._ensure_from(proposal, inquiry, contract.requested_by, email=contract.client_email)
        if client is None:
            return None

        self.gateway.conditional_update(Contract, contract_id, {"client_id": client.id}, {"client_id": None})
        self._mark_onboarded(inquiry)
        self.notifier.dispatch(self.notifier.activity_effect(
            "client_created_from_contract" if created else "client_linked_from_contract",
            "client", client.id,
            user_id=contract.requested_by,
            details={"contractId": contract_id, "proposalId": contract.proposal_id},
        ))
        return client

    def _ensure_from(self, proposal, inquiry, created_by, email=None):
        content = parse_proposal_content(proposal.proposal_data if proposal else None)
        email = email or content.client_email or (inquiry.email if inquiry else None)
        if not email:
            logger.error("No client email found for proposal %s", proposal.id if proposal else None)
            return None, False
        return self.ensure_client(
            email,
            content.client_company or (inquiry.company if inquiry and inquiry.company else "Unknown"),
            content.client_name or (inquiry.name if inquiry else "Unknown"),
            created_by=created_by,
            phone=content.client_phone or (inquiry.phone if inquiry else ""),
            address=content.client_address,
            industry=content.client_industry,
        )

    def _mark_onboarded(self, inquiry):
        if inquiry is None:
            return
        self.gateway.conditional_update(Inquiry, inquiry.id, {"status": "on_boarded", "updated_at": self.clock()}, {})
