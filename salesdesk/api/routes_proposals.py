# File: salesdesk/api/routes_proposals.py

import json

from flask import Blueprint, g, jsonify

from salesdesk.api.common import (
    REVIEWER_ROLES, json_body, login_required, request_metadata, services, session_id
)
from salesdesk.core.tokens import generate_csrf_token
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.api.routes_proposals", "salesdesk.log")

proposals_bp = Blueprint("salesdesk_proposals", __name__, url_prefix="/api/v1")


def _iso(value):
    return value.isoformat() if value else None


def proposal_to_dict(proposal):
    try:
        data = json.loads(proposal.proposal_data or "{}")
    except ValueError:
        data = {}
    return {
        "id": proposal.id,
        "proposalNumber": proposal.proposal_number,
        "inquiryId": proposal.inquiry_id,
        "status": proposal.status.value,
        "requestedBy": proposal.requested_by,
        "reviewedBy": proposal.reviewed_by,
        "reviewedAt": _iso(proposal.reviewed_at),
        "adminNotes": proposal.admin_notes,
        "rejectionReason": proposal.rejection_reason,
        "proposalData": data,
        "pdfUrl": proposal.pdf_url,
        "sentAt": _iso(proposal.sent_at),
        "expiresAt": _iso(proposal.expires_at),
        "clientResponse": proposal.client_response.value if proposal.client_response else None,
        "clientResponseAt": _iso(proposal.client_response_at),
    }


@proposals_bp.route("/csrf-token", methods=["GET"])
@login_required()
def csrf_token():
    return jsonify({"csrfToken": generate_csrf_token(session_id(), services().settings.csrf_secret)})


@proposals_bp.route("/proposals", methods=["POST"])
@login_required()
def create_proposal():
    data = json_body()
    if not data.get("inquiryId"):
        return jsonify({"error": "inquiryId is required"}), 400

    proposal = services().proposals.create(
        data["inquiryId"], g.user.id, data.get("proposalData") or {}, request_metadata(),
        pdf_url=data.get("pdfUrl"),
    )
    return jsonify(proposal_to_dict(proposal)), 201


@proposals_bp.route("/proposals/<proposal_id>", methods=["GET"])
@login_required()
def get_proposal(proposal_id):
    return jsonify(proposal_to_dict(services().proposals.get(proposal_id)))


@proposals_bp.route("/proposals/<proposal_id>", methods=["PATCH"])
@login_required()
def update_proposal(proposal_id):
    data = json_body()
    proposal = services().proposals.update(
        proposal_id, g.user.id, data.get("proposalData"), request_metadata(), pdf_url=data.get("pdfUrl"),
    )
    return jsonify(proposal_to_dict(proposal))


@proposals_bp.route("/proposals/<proposal_id>/approve", methods=["POST"])
@login_required(roles=REVIEWER_ROLES)
def approve_proposal(proposal_id):
    proposal = services().proposals.approve(
        proposal_id, g.user.id, json_body().get("adminNotes"), request_metadata(),
    )
    return jsonify(proposal_to_dict(proposal))


@proposals_bp.route("/proposals/<proposal_id>/reject", methods=["POST"])
@login_required(roles=REVIEWER_ROLES)
def reject_proposal(proposal_id):
    reason = (json_body().get("rejectionReason") or "").strip()
    if not reason:
        return jsonify({"error": "Rejection reason is required"}), 400
    proposal = services().proposals.reject(proposal_id, g.user.id, reason, request_metadata())
    return jsonify(proposal_to_dict(proposal))


@proposals_bp.route("/proposals/<proposal_id>/send", methods=["POST"])
@login_required()
def send_proposal(proposal_id):
    issued = services().proposals.send(
        proposal_id, g.user.id, request_metadata(), pdf_url=json_body().get("pdfUrl"),
    )
    logger.info("Proposal %s sent, response token %s...", proposal_id, issued.token[:8])
    return jsonify({**proposal_to_dict(issued.entity), "responseUrl": issued.url})


@proposals_bp.route("/proposals/<proposal_id>/cancel", methods=["POST"])
@login_required()
def cancel_proposal(proposal_id):
    proposal = services().proposals.cancel(proposal_id, g.user.id, request_metadata())
    return jsonify(proposal_to_dict(proposal))
