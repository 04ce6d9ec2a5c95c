# File: salesdesk/api/routes_public.py
#
# Routes reached from emailed links. There is no login here: the token in
# the query string is the only credential, and it is never logged in full.

from flask import Blueprint, jsonify, request

from salesdesk.api.common import client_ip, json_body, services
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.api.routes_public", "salesdesk.log")

public_bp = Blueprint("salesdesk_public", __name__)


def _token():
    return request.args.get("token") or json_body().get("token") or ""


@public_bp.route("/proposals/public/<proposal_id>/status", methods=["GET"])
def proposal_status(proposal_id):
    return jsonify(services().proposals.public_status(proposal_id, _token()))


@public_bp.route("/proposals/public/<proposal_id>/approve", methods=["POST"])
def accept_proposal(proposal_id):
    token = _token()
    logger.info("Client accepting proposal %s with token %s...", proposal_id, token[:8])
    proposal = services().proposals.accept(proposal_id, token, client_ip())
    return jsonify({"message": "Thank you. The proposal has been accepted.", "status": proposal.status.value})


@public_bp.route("/proposals/public/<proposal_id>/reject", methods=["POST"])
def decline_proposal(proposal_id):
    token = _token()
    logger.info("Client declining proposal %s with token %s...", proposal_id, token[:8])
    proposal = services().proposals.decline(proposal_id, token, client_ip())
    return jsonify({"message": "The proposal has been declined.", "status": proposal.status.value})


@public_bp.route("/contracts/public/<contract_id>/status", methods=["GET"])
def contract_status(contract_id):
    return jsonify(services().contracts.public_status(contract_id, _token()))


@public_bp.route("/contracts/public/<contract_id>/submit", methods=["POST"])
def submit_contract(contract_id):
    token = _token()
    logger.info("Client submitting signed contract %s with token %s...", contract_id, token[:8])
    contract = services().contracts.sign(
        contract_id, token, json_body().get("signedContractUrl"), client_ip(),
    )
    return jsonify({"message": "Thank you. Your signed contract has been received.", "status": contract.status.value})
