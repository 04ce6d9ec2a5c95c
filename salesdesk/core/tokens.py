# ------------------------------------------------------------------------
# File: tokens.py
# Location: salesdesk/core/tokens.py
# Description:
#     Token gate for actors without a login session. A client proves it
#     may accept, decline or sign by presenting the secret from the
#     emailed link. Only the SHA-256 digest of that secret is stored; the
#     comparison is constant-time. The CSRF helpers at the bottom apply
#     the same discipline to a second, HMAC-derived secret family.
# ------------------------------------------------------------------------

import hashlib
import hmac
import secrets
from datetime import datetime, timezone

from salesdesk.core.errors import (
    NotFound, TokenAlreadyConsumed, TokenExpired, TokenInvalid, TokenNotIssued
)
from salesdesk.db.models import Contract, Proposal
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.tokens", "salesdesk.log")

TOKEN_BYTES = 32


def hash_token(token):
    return hashlib.sha256(token.encode()).hexdigest()


def issue_token():
    """Return ``(raw_token, token_hash)``. 256 bits of randomness, hex encoded."""
    token = secrets.token_hex(TOKEN_BYTES)
    return token, hash_token(token)


def token_matches(stored_hash, presented):
    if not stored_hash or not presented:
        return False
    return hmac.compare_digest(hash_token(presented), stored_hash)


class TokenGate:
    """
    Loads an entity and checks a presented token against it.

    The failure kinds are distinct on purpose: the public pages show a
    different message for an unknown link, an expired link and a link that
    was already used.
    """

    def __init__(self, gateway, clock=None):
        self.gateway = gateway
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def verify_proposal(self, proposal_id, presented, on_expired=None):
        proposal = self.gateway.read(Proposal, proposal_id)
        if proposal is None:
            raise NotFound("Proposal not found", entity_type="proposal", entity_id=proposal_id)
        if not proposal.client_response_token_hash:
            raise TokenNotIssued(entity_type="proposal", entity_id=proposal_id)
        if not token_matches(proposal.client_response_token_hash, presented):
            logger.warning("Invalid response token for proposal %s", proposal_id)
            raise TokenInvalid(entity_type="proposal", entity_id=proposal_id)
        if proposal.client_response is not None:
            raise TokenAlreadyConsumed(
                f"This proposal has already been {proposal.client_response.value}.",
                entity_type="proposal",
                entity_id=proposal_id,
                current_status=proposal.status.value,
            )
        if proposal.expires_at and self.clock() > proposal.expires_at:
            if on_expired is not None:
                on_expired(proposal)
            raise TokenExpired(
                "This proposal has expired. Please contact us for an updated quote.",
                entity_type="proposal",
                entity_id=proposal_id,
            )
        return proposal

    def verify_contract(self, contract_id, presented):
        contract = self.gateway.read(Contract, contract_id)
        if contract is None:
            raise NotFound("Contract not found", entity_type="contract", entity_id=contract_id)
        if not contract.submission_token_hash:
            raise TokenNotIssued(entity_type="contract", entity_id=contract_id)
        if not token_matches(contract.submission_token_hash, presented):
            logger.warning("Invalid submission token for contract %s", contract_id)
            raise TokenInvalid(entity_type="contract", entity_id=contract_id)
        if contract.signed_at is not None:
            raise TokenAlreadyConsumed(
                "This contract has already been signed.",
                entity_type="contract",
                entity_id=contract_id,
                current_status=contract.status.value,
            )
        if contract.submission_expires_at and self.clock() > contract.submission_expires_at:
            raise TokenExpired(entity_type="contract", entity_id=contract_id)
        return contract


def generate_csrf_token(session_id, secret):
    """Deterministic per session: same session id always yields the same token."""
    return hmac.new(secret.encode(), session_id.encode(), hashlib.sha256).hexdigest()


def verify_csrf_token(token, session_id, secret):
    if not token or not session_id:
        return False
    expected = generate_csrf_token(session_id, secret)
    return hmac.compare_digest(expected.encode(), token.encode())
