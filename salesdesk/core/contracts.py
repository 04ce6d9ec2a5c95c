# ------------------------------------------------------------------------
# File: contracts.py
# Location: salesdesk/core/contracts.py
# Description:
#     Contract lifecycle, created from an accepted proposal:
#     pending_request -> requested -> ready_for_sales (re-uploads allowed)
#     -> sent_to_sales -> sent_to_client -> signed -> hardbound_received.
#     The client signs by uploading the signed document through the
#     token-gated link issued on sent_to_client.
# ------------------------------------------------------------------------

import json

from sqlalchemy.exc import IntegrityError

from salesdesk.core.content import parse_proposal_content
from salesdesk.core.dispatcher import Effect
from salesdesk.core.errors import (
    AlreadyExists, ArtifactMissing, TokenAlreadyConsumed, WrongState
)
from salesdesk.core.tokens import hash_token, issue_token
from salesdesk.core.transitions import TokenIssued, TransitionEngine
from salesdesk.db.gateway import PRESENT
from salesdesk.db.models import Contract, ContractStatus, Proposal, ProposalStatus
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.contracts", "salesdesk.log")

DOCUMENT_STATUSES = (ContractStatus.Requested, ContractStatus.Ready_For_Sales)


class DocumentRenderer:
    """Produces proposal and contract PDFs and returns where each was stored."""

    def render_proposal(self, proposal):
        raise NotImplementedError

    def render_contract(self, contract):
        raise NotImplementedError


class ContractEngine(TransitionEngine):
    entity_type = "contract"
    model = Contract

    def __init__(self, gateway, notifier, settings, gate, clients=None, renderer=None, clock=None):
        super().__init__(gateway, notifier, settings, gate, clock=clock)
        self.clients = clients
        self.renderer = renderer

    def create_for_proposal(self, proposal_id, actor_id=None, metadata=None):
        """Runs as background work after a proposal is accepted. At most one contract per proposal."""
        proposal = self.gateway.read(Proposal, proposal_id)
        if proposal is None or proposal.status != ProposalStatus.Accepted:
            raise WrongState(
                "Contracts can only be created for accepted proposals",
                entity_type="proposal", entity_id=proposal_id,
                current_status=proposal.status.value if proposal else None,
            )

        number = self.gateway.next_sequence("contract")
        try:
            contract = self.gateway.insert(Contract(
                contract_number=f"CON-{number:06d}",
                proposal_id=proposal_id,
                requested_by=proposal.requested_by,
                status=ContractStatus.Pending_Request,
            ))
        except IntegrityError as exc:
            raise AlreadyExists(entity_type="contract") from exc

        logger.info("Contract %s created for proposal %s", contract.id, proposal_id)
        self.notifier.dispatch(
            self.notifier.activity_effect(
                "contract_created", "contract", contract.id, metadata,
                user_id=actor_id or proposal.requested_by, details={"proposalId": proposal_id},
            ),
            self.notifier.staff_realtime_effect(
                "contract:created", self._event_payload(contract), extra_user_ids=[proposal.requested_by],
            ),
        )
        return contract

    # -- sales -------------------------------------------------------------

    def request(self, contract_id, sales_user_id, contract_details, metadata=None):
        contract = self._transition(
            contract_id,
            ContractStatus.Requested,
            ContractStatus.Pending_Request,
            values={"contract_details": json.dumps(contract_details or {}), "requested_at": self.now()},
            owner=sales_user_id,
            wrong_state_message="Contract has already been requested",
        )
        self.notifier.dispatch(
            self.notifier.activity_effect("contract_requested", "contract", contract_id, metadata, user_id=sales_user_id),
            self.notifier.staff_realtime_effect("contract:requested", self._event_payload(contract)),
        )
        return contract

    def send_to_client(self, contract_id, sales_user_id, client_email, metadata=None):
        token, token_hash = issue_token()
        now = self.now()
        contract = self._transition(
            contract_id,
            ContractStatus.Sent_To_Client,
            ContractStatus.Sent_To_Sales,
            values={
                "submission_token_hash": token_hash,
                "submission_expires_at": now + self.settings.contract_link_validity,
                "client_email": client_email,
                "sent_to_client_by": sales_user_id,
                "sent_to_client_at": now,
            },
            owner=sales_user_id,
            expected={"contract_pdf_url": PRESENT, "submission_token_hash": None},
            wrong_state_message="Can only send to client after admin sends to sales",
        )
        submit_url = self._public_url(f"/contract-submission/{contract_id}?token={token}")
        self.notifier.dispatch(
            self.notifier.email_effect(
                client_email, "contract_to_client",
                client_name=self._client_name(contract),
                contract_url=contract.contract_pdf_url,
                submit_url=submit_url,
            ),
            self.notifier.activity_effect(
                "contract_sent_to_client", "contract", contract_id, metadata,
                user_id=sales_user_id, details={"clientEmail": client_email},
            ),
            self.notifier.staff_realtime_effect("contract:sent_to_client", self._event_payload(contract)),
        )
        return TokenIssued(contract, token, submit_url)

    # -- reviewer ----------------------------------------------------------

    def upload_document(self, contract_id, reviewer_id, pdf_url, metadata=None):
        if not pdf_url:
            raise ArtifactMissing("A contract document is required", entity_type="contract", entity_id=contract_id)
        return self._attach_document(contract_id, reviewer_id, pdf_url, False, metadata)

    def generate_document(self, contract_id, reviewer_id, metadata=None):
        contract = self.get(contract_id)
        if contract.status not in DOCUMENT_STATUSES:
            raise WrongState(
                "Can only generate contract when status is requested or ready_for_sales",
                entity_type="contract", entity_id=contract_id, current_status=contract.status.value,
            )
        if self.renderer is None:
            raise ArtifactMissing("No contract renderer is configured", entity_type="contract", entity_id=contract_id)
        pdf_url = self.renderer.render_contract(contract)
        if not pdf_url:
            raise ArtifactMissing(entity_type="contract", entity_id=contract_id)
        return self._attach_document(contract_id, reviewer_id, pdf_url, True, metadata)

    def _attach_document(self, contract_id, reviewer_id, pdf_url, generated, metadata):
        contract = self._transition(
            contract_id,
            ContractStatus.Ready_For_Sales,
            DOCUMENT_STATUSES,
            values={
                "contract_pdf_url": pdf_url,
                "is_generated": generated,
                "prepared_by": reviewer_id,
                "prepared_at": self.now(),
            },
            wrong_state_message="Can only upload contract when status is requested or ready_for_sales",
        )
        action = "contract_generated" if generated else "contract_uploaded"
        self.notifier.dispatch(
            self.notifier.activity_effect(action, "contract", contract_id, metadata, user_id=reviewer_id),
        )
        return contract

    def send_to_sales(self, contract_id, reviewer_id, metadata=None):
        contract = self._transition(
            contract_id,
            ContractStatus.Sent_To_Sales,
            ContractStatus.Ready_For_Sales,
            values={"sent_to_sales_by": reviewer_id, "sent_to_sales_at": self.now()},
            expected={"contract_pdf_url": PRESENT},
            wrong_state_message="Can only send to sales when contract is ready",
        )
        self.notifier.dispatch(
            self.notifier.realtime_effect([contract.requested_by], "contract:sent_to_sales", self._event_payload(contract)),
            self.notifier.activity_effect("contract_sent_to_sales", "contract", contract_id, metadata, user_id=reviewer_id),
        )
        return contract

    def receive_hardbound(self, contract_id, user_id, hardbound_url, metadata=None):
        if not hardbound_url:
            raise ArtifactMissing("A hardbound copy is required", entity_type="contract", entity_id=contract_id)
        contract = self._transition(
            contract_id,
            ContractStatus.Hardbound_Received,
            ContractStatus.Signed,
            values={"hardbound_url": hardbound_url, "hardbound_received_by": user_id, "hardbound_received_at": self.now()},
            wrong_state_message="Can only upload the hardbound copy of a signed contract",
        )
        self.notifier.dispatch(
            self.notifier.activity_effect("contract_hardbound_received", "contract", contract_id, metadata, user_id=user_id),
        )
        return contract

    # -- client (token-gated) ------------------------------------------------

    def verify_client_token(self, contract_id, token):
        return self.gate.verify_contract(contract_id, token)

    def public_status(self, contract_id, token):
        contract = self.verify_client_token(contract_id, token)
        return {
            "id": contract.id,
            "contractNumber": contract.contract_number,
            "status": contract.status.value,
            "contractPdfUrl": contract.contract_pdf_url,
            "expiresAt": contract.submission_expires_at.isoformat() if contract.submission_expires_at else None,
        }

    def sign(self, contract_id, token, signed_document_url, ip_address=None):
        self.verify_client_token(contract_id, token)
        if not signed_document_url:
            raise ArtifactMissing("The signed contract document is required", entity_type="contract", entity_id=contract_id)

        contract = self._transition(
            contract_id,
            ContractStatus.Signed,
            ContractStatus.Sent_To_Client,
            values={"signed_contract_url": signed_document_url, "signed_at": self.now(), "signed_ip": ip_address},
            expected={
                "signed_at": None,
                "contract_pdf_url": PRESENT,
                "submission_token_hash": hash_token(token),
            },
            wrong_state_message="This contract is no longer awaiting a signature",
        )
        logger.info("Contract %s signed", contract_id)

        sales_user_id = contract.sent_to_client_by or contract.requested_by
        self.notifier.dispatch(
            Effect(name="client:onboard_contract", func=self.clients.onboard_from_contract, args=(contract_id,)),
            self.notifier.activity_effect(
                "contract_signed", "contract", contract_id, {"ip_address": ip_address},
                user_id=sales_user_id, details={"clientIp": ip_address},
            ),
            self.notifier.staff_realtime_effect(
                "contract:signed", self._event_payload(contract), extra_user_ids=[sales_user_id],
            ),
            self.notifier.user_email_effect(
                sales_user_id, "contract_signed",
                client_name=self._client_name(contract),
                company_name=self._company_name(contract),
                contract_number=contract.contract_number,
            ),
        )
        return contract

    def _precondition_error(self, current, conditions):
        if "signed_at" in conditions and current.signed_at is not None:
            return TokenAlreadyConsumed(
                "This contract has already been signed.",
                entity_type="contract", entity_id=current.id, current_status=current.status.value,
            )
        if (
            conditions.get("contract_pdf_url") is PRESENT
            and current.status == conditions["status"]
            and not current.contract_pdf_url
        ):
            return ArtifactMissing(entity_type="contract", entity_id=current.id)
        return None

    # -- helpers -------------------------------------------------------------

    def _proposal_content(self, contract):
        proposal = self.gateway.read(Proposal, contract.proposal_id)
        return parse_proposal_content(proposal.proposal_data if proposal else None)

    def _client_name(self, contract):
        return self._proposal_content(contract).client_name or "Client"

    def _company_name(self, contract):
        return self._proposal_content(contract).client_company or ""

    @staticmethod
    def _event_payload(contract):
        return {
            "contractId": contract.id,
            "contractNumber": contract.contract_number,
            "proposalId": contract.proposal_id,
            "status": contract.status.value,
        }
