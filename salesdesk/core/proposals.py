# ------------------------------------------------------------------------
# File: proposals.py
# Location: salesdesk/core/proposals.py
# Description:
#     Proposal lifecycle. Sales creates and edits, a reviewer approves or
#     disapproves, sales sends (issuing the client's response token), the
#     client accepts or declines through the emailed link, and a sent
#     proposal past its validity window becomes expired. Acceptance
#     queues either contract creation or direct client onboarding.
# ------------------------------------------------------------------------

from datetime import timedelta

from salesdesk.core.dispatcher import Effect
from salesdesk.core.content import parse_proposal_content, serialize_proposal_content
from salesdesk.core.errors import (
    AlreadyReviewed, NotFound, TokenAlreadyConsumed, TokenExpired, WrongState
)
from salesdesk.core.tokens import hash_token, issue_token
from salesdesk.core.transitions import TokenIssued, TransitionEngine
from salesdesk.db.models import (
    ClientResponse, Inquiry, Proposal, ProposalStatus, Service
)
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.proposals", "salesdesk.log")

EDITABLE_STATUSES = (ProposalStatus.Pending, ProposalStatus.Disapproved)


class ProposalEngine(TransitionEngine):
    entity_type = "proposal"
    model = Proposal

    def __init__(self, gateway, notifier, settings, gate, contracts=None, clients=None, renderer=None, clock=None):
        super().__init__(gateway, notifier, settings, gate, clock=clock)
        self.contracts = contracts
        self.clients = clients
        self.renderer = renderer

    # -- sales ---------------------------------------------------------------

    def create(self, inquiry_id, requested_by, proposal_data, metadata=None, pdf_url=None):
        inquiry = self.gateway.read(Inquiry, inquiry_id)
        if inquiry is None:
            raise NotFound("Inquiry not found", entity_type="inquiry", entity_id=inquiry_id)

        number = self.gateway.next_sequence("proposal")
        proposal = self.gateway.insert(Proposal(
            proposal_number=f"PROP-{number:06d}",
            inquiry_id=inquiry_id,
            requested_by=requested_by,
            status=ProposalStatus.Pending,
            proposal_data=serialize_proposal_content(proposal_data),
            pdf_url=pdf_url or None,
        ))
        logger.info("Proposal %s created for inquiry %s", proposal.proposal_number, inquiry_id)

        self.notifier.dispatch(
            self._inquiry_status_effect(inquiry_id, "proposal_created"),
            self.notifier.activity_effect(
                "proposal_created", "proposal", proposal.id, metadata,
                user_id=requested_by, details={"inquiryId": inquiry_id},
            ),
            self.notifier.staff_realtime_effect("proposal:created", self._event_payload(proposal)),
        )
        return proposal

    def update(self, proposal_id, editor_id, proposal_data=None, metadata=None, pdf_url=None):
        """
        Edit content. Editing a disapproved proposal puts it back to pending and
        clears the review. Content and PDF are only replaced when given.
        """
        before = self.get(proposal_id)
        values = {"rejection_reason": None, "reviewed_by": None, "reviewed_at": None}
        if proposal_data:
            values["proposal_data"] = serialize_proposal_content(proposal_data)
        if pdf_url:
            values["pdf_url"] = pdf_url
        proposal = self._transition(
            proposal_id,
            ProposalStatus.Pending,
            EDITABLE_STATUSES,
            values=values,
            wrong_state_message="Can only update pending or disapproved proposals",
        )
        action = "proposal_revised" if before.status == ProposalStatus.Disapproved else "proposal_updated"
        self.notifier.dispatch(
            self.notifier.activity_effect(action, "proposal", proposal_id, metadata, user_id=editor_id),
        )
        return proposal

    def send(self, proposal_id, sales_user_id, metadata=None, pdf_url=None):
        """
        Approved -> sent. Only the requesting sales person may send; issues the
        response token. The PDF is the one given here, else the one already
        uploaded, else one produced by the renderer.
        """
        current = self.get(proposal_id)
        content = parse_proposal_content(current.proposal_data)
        validity_days = content.validity_days or self.settings.proposal_validity_days
        pdf_url = pdf_url or current.pdf_url
        if not pdf_url and self.renderer is not None and current.status == ProposalStatus.Approved:
            pdf_url = self.renderer.render_proposal(current)

        token, token_hash = issue_token()
        now = self.now()
        proposal = self._transition(
            proposal_id,
            ProposalStatus.Sent,
            ProposalStatus.Approved,
            values={
                "client_response_token_hash": token_hash,
                "sent_by": sales_user_id,
                "sent_at": now,
                "expires_at": now + timedelta(days=validity_days),
                "pdf_url": pdf_url or None,
            },
            owner=sales_user_id,
            expected={"client_response_token_hash": None},
            wrong_state_message="Can only send approved proposals",
        )
        response_url = self._public_url(f"/proposal-response/{proposal_id}?token={token}")

        self.notifier.dispatch(
            self._client_proposal_email(proposal, content, token),
            self._inquiry_status_effect(proposal.inquiry_id, "submitted_proposal"),
            self.notifier.activity_effect(
                "proposal_sent", "proposal", proposal_id, metadata,
                user_id=sales_user_id, details={"inquiryId": proposal.inquiry_id},
            ),
            self.notifier.staff_realtime_effect("proposal:sent", self._event_payload(proposal)),
        )
        return TokenIssued(proposal, token, response_url)

    def cancel(self, proposal_id, user_id, metadata=None):
        proposal = self._transition(
            proposal_id,
            ProposalStatus.Cancelled,
            ProposalStatus.Pending,
            owner=user_id,
            wrong_state_message="Can only cancel pending proposals",
        )
        self.notifier.dispatch(
            self.notifier.activity_effect("proposal_cancelled", "proposal", proposal_id, metadata, user_id=user_id),
        )
        return proposal

    # -- reviewer --------------------------------------------------------------

    def approve(self, proposal_id, reviewer_id, admin_notes=None, metadata=None):
        proposal = self._transition(
            proposal_id,
            ProposalStatus.Approved,
            ProposalStatus.Pending,
            values={"reviewed_by": reviewer_id, "reviewed_at": self.now(), "admin_notes": admin_notes},
            wrong_state=AlreadyReviewed,
        )
        self.notifier.dispatch(
            self.notifier.user_email_effect(
                proposal.requested_by, "proposal_approved",
                proposal_number=proposal.proposal_number,
                client_name=self._client_name(proposal),
            ),
            self.notifier.realtime_effect([proposal.requested_by], "proposal:approved", self._event_payload(proposal)),
            self.notifier.activity_effect(
                "proposal_approved", "proposal", proposal_id, metadata,
                user_id=reviewer_id, details={"inquiryId": proposal.inquiry_id},
            ),
        )
        return proposal

    def reject(self, proposal_id, reviewer_id, rejection_reason, metadata=None):
        proposal = self._transition(
            proposal_id,
            ProposalStatus.Disapproved,
            ProposalStatus.Pending,
            values={"reviewed_by": reviewer_id, "reviewed_at": self.now(), "rejection_reason": rejection_reason},
            wrong_state=AlreadyReviewed,
        )
        self.notifier.dispatch(
            self.notifier.user_email_effect(
                proposal.requested_by, "proposal_disapproved",
                proposal_number=proposal.proposal_number, reason=rejection_reason,
            ),
            self.notifier.realtime_effect([proposal.requested_by], "proposal:disapproved", self._event_payload(proposal)),
            self.notifier.activity_effect(
                "proposal_disapproved", "proposal", proposal_id, metadata,
                user_id=reviewer_id, details={"rejectionReason": rejection_reason},
            ),
        )
        return proposal

    # -- client (token-gated) --------------------------------------------------

    def verify_client_token(self, proposal_id, token):
        return self.gate.verify_proposal(proposal_id, token, on_expired=self._expire_one)

    def public_status(self, proposal_id, token):
        proposal = self.verify_client_token(proposal_id, token)
        content = parse_proposal_content(proposal.proposal_data)
        return {
            "id": proposal.id,
            "proposalNumber": proposal.proposal_number,
            "status": proposal.status.value,
            "sentAt": proposal.sent_at.isoformat() if proposal.sent_at else None,
            "expiresAt": proposal.expires_at.isoformat() if proposal.expires_at else None,
            "clientName": content.client_name,
            "pdfUrl": proposal.pdf_url,
        }

    def accept(self, proposal_id, token, ip_address=None):
        proposal = self._record_client_response(proposal_id, token, ClientResponse.Accepted, ip_address)

        requires_contract = self._requires_contract(proposal)
        if requires_contract:
            follow_up = _effect(
                "contract:create", self.contracts.create_for_proposal,
                proposal_id, proposal.requested_by, {"ip_address": ip_address},
            )
        else:
            follow_up = _effect(
                "client:onboard", self.clients.onboard_from_proposal,
                proposal_id, proposal.requested_by, {"ip_address": ip_address},
            )
        logger.info("Proposal %s accepted (requires contract: %s)", proposal_id, requires_contract)
        self.notifier.dispatch(follow_up)
        return proposal

    def decline(self, proposal_id, token, ip_address=None):
        return self._record_client_response(proposal_id, token, ClientResponse.Rejected, ip_address)

    def _record_client_response(self, proposal_id, token, response, ip_address):
        self.verify_client_token(proposal_id, token)
        to_status = ProposalStatus.Accepted if response == ClientResponse.Accepted else ProposalStatus.Rejected

        proposal = self._transition(
            proposal_id,
            to_status,
            ProposalStatus.Sent,
            values={
                "client_response": response,
                "client_response_at": self.now(),
                "client_response_ip": ip_address,
            },
            expected={"client_response": None, "client_response_token_hash": hash_token(token)},
            wrong_state_message="This proposal has already been responded to or is no longer available",
        )

        action = "proposal_client_approved" if response == ClientResponse.Accepted else "proposal_client_rejected"
        self.notifier.dispatch(
            self.notifier.activity_effect(
                action, "proposal", proposal_id, {"ip_address": ip_address},
                user_id=proposal.requested_by, details={"clientIp": ip_address},
            ),
            self.notifier.staff_realtime_effect(
                "proposal:responded", self._event_payload(proposal), extra_user_ids=[proposal.requested_by],
            ),
            self.notifier.user_email_effect(
                proposal.requested_by, "proposal_response",
                proposal_number=proposal.proposal_number,
                client_name=self._client_name(proposal),
                response=response.value,
            ),
        )
        return proposal

    def _precondition_error(self, current, conditions):
        if "client_response" not in conditions:
            return None
        if current.client_response is not None:
            return TokenAlreadyConsumed(
                f"This proposal has already been {current.client_response.value}.",
                entity_type="proposal", entity_id=current.id, current_status=current.status.value,
            )
        if current.status == ProposalStatus.Expired:
            return TokenExpired(entity_type="proposal", entity_id=current.id)
        if current.client_response_token_hash != conditions.get("client_response_token_hash"):
            return WrongState(entity_type="proposal", entity_id=current.id, current_status=current.status.value)
        return None

    # -- expiry ------------------------------------------------------------------

    def _expire_one(self, proposal):
        """Lazy sent -> expired, applied when a client presents a token after expires_at."""
        rows = self.gateway.conditional_update(
            Proposal,
            proposal.id,
            {"status": ProposalStatus.Expired, "updated_at": self.now()},
            {"status": ProposalStatus.Sent, "client_response": None},
        )
        if rows:
            logger.info("Proposal %s marked expired", proposal.id)
        return rows

    def expire_overdue(self, now=None):
        """Bulk sweep: every sent proposal past expires_at without a response becomes expired."""
        now = now or self.now()
        rows = self.gateway.bulk_conditional_update(
            Proposal,
            {"status": ProposalStatus.Expired, "updated_at": now},
            {"status": ProposalStatus.Sent, "client_response": None},
            Proposal.expires_at < now,
        )
        if rows:
            logger.info("Expired %d overdue proposal(s)", rows)
        return rows

    # -- helpers -----------------------------------------------------------------

    def _requires_contract(self, proposal):
        inquiry = self.gateway.read(Inquiry, proposal.inquiry_id)
        if inquiry is None or inquiry.service_id is None:
            return True
        service = self.gateway.read(Service, inquiry.service_id)
        return True if service is None else bool(service.requires_contract)

    def _client_name(self, proposal):
        content = parse_proposal_content(proposal.proposal_data)
        if content.client_name:
            return content.client_name
        inquiry = self.gateway.read(Inquiry, proposal.inquiry_id)
        return inquiry.name if inquiry else "a client"

    def _client_proposal_email(self, proposal, content, token):
        inquiry = self.gateway.read(Inquiry, proposal.inquiry_id)
        recipient = content.client_email or (inquiry.email if inquiry else None)
        if not recipient:
            logger.warning("No client email for proposal %s; response link not emailed", proposal.id)
            return None
        return self.notifier.email_effect(
            recipient, "proposal_to_client",
            client_name=content.client_name or (inquiry.name if inquiry else "there"),
            proposal_number=proposal.proposal_number,
            expires_at=proposal.expires_at.date().isoformat(),
            pdf_url=proposal.pdf_url,
            accept_url=self._public_url(f"/proposal-response/{proposal.id}?token={token}&action=approve"),
            decline_url=self._public_url(f"/proposal-response/{proposal.id}?token={token}&action=reject"),
        )

    def _inquiry_status_effect(self, inquiry_id, status):
        return _effect(
            f"inquiry:{status}", self.gateway.conditional_update,
            Inquiry, inquiry_id, {"status": status, "updated_at": self.now()}, {},
        )

    @staticmethod
    def _event_payload(proposal):
        return {
            "proposalId": proposal.id,
            "proposalNumber": proposal.proposal_number,
            "inquiryId": proposal.inquiry_id,
            "status": proposal.status.value,
        }


def _effect(name, func, *args):
    return Effect(name=name, func=func, args=args)
