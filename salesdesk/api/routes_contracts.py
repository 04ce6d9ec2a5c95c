# File: salesdesk/api/routes_contracts.py

import json

from flask import Blueprint, g, jsonify

from salesdesk.api.common import REVIEWER_ROLES, json_body, login_required, request_metadata, services
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.api.routes_contracts", "salesdesk.log")

contracts_bp = Blueprint("salesdesk_contracts", __name__, url_prefix="/api/v1/contracts")


def _iso(value):
    return value.isoformat() if value else None


def contract_to_dict(contract):
    try:
        details = json.loads(contract.contract_details) if contract.contract_details else None
    except ValueError:
        details = None
    return {
        "id": contract.id,
        "contractNumber": contract.contract_number,
        "proposalId": contract.proposal_id,
        "status": contract.status.value,
        "requestedBy": contract.requested_by,
        "contractDetails": details,
        "contractPdfUrl": contract.contract_pdf_url,
        "isGenerated": contract.is_generated,
        "clientEmail": contract.client_email,
        "sentToClientAt": _iso(contract.sent_to_client_at),
        "submissionExpiresAt": _iso(contract.submission_expires_at),
        "signedContractUrl": contract.signed_contract_url,
        "signedAt": _iso(contract.signed_at),
        "hardboundUrl": contract.hardbound_url,
        "clientId": contract.client_id,
    }


@contracts_bp.route("/<contract_id>", methods=["GET"])
@login_required()
def get_contract(contract_id):
    return jsonify(contract_to_dict(services().contracts.get(contract_id)))


@contracts_bp.route("/<contract_id>/request", methods=["POST"])
@login_required()
def request_contract(contract_id):
    contract = services().contracts.request(
        contract_id, g.user.id, json_body().get("contractDetails") or {}, request_metadata(),
    )
    return jsonify(contract_to_dict(contract))


@contracts_bp.route("/<contract_id>/upload", methods=["POST"])
@login_required(roles=REVIEWER_ROLES)
def upload_contract(contract_id):
    data = json_body()
    if data.get("generate"):
        contract = services().contracts.generate_document(contract_id, g.user.id, request_metadata())
    else:
        contract = services().contracts.upload_document(
            contract_id, g.user.id, data.get("contractPdfUrl"), request_metadata(),
        )
    return jsonify(contract_to_dict(contract))


@contracts_bp.route("/<contract_id>/send-to-sales", methods=["POST"])
@login_required(roles=REVIEWER_ROLES)
def send_to_sales(contract_id):
    contract = services().contracts.send_to_sales(contract_id, g.user.id, request_metadata())
    return jsonify(contract_to_dict(contract))


@contracts_bp.route("/<contract_id>/send-to-client", methods=["POST"])
@login_required()
def send_to_client(contract_id):
    client_email = (json_body().get("clientEmail") or "").strip()
    if not client_email:
        return jsonify({"error": "clientEmail is required"}), 400
    issued = services().contracts.send_to_client(contract_id, g.user.id, client_email, request_metadata())
    logger.info("Contract %s sent to client, submission token %s...", contract_id, issued.token[:8])
    return jsonify({**contract_to_dict(issued.entity), "submissionUrl": issued.url})


@contracts_bp.route("/<contract_id>/hardbound", methods=["POST"])
@login_required()
def upload_hardbound(contract_id):
    contract = services().contracts.receive_hardbound(
        contract_id, g.user.id, json_body().get("hardboundUrl"), request_metadata(),
    )
    return jsonify(contract_to_dict(contract))
