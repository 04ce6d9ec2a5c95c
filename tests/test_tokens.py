# ------------------------------------------------------------------------
# File: test_tokens.py
# Location: tests/test_tokens.py
# Description:
#     Token issuance, the client token gate and the CSRF helpers.
# ------------------------------------------------------------------------

import pytest

from salesdesk.core.errors import (
    NotFound, TokenAlreadyConsumed, TokenExpired, TokenInvalid, TokenNotIssued
)
from salesdesk.core.tokens import (
    generate_csrf_token, hash_token, issue_token, token_matches, verify_csrf_token
)
from salesdesk.db.models import Proposal, ProposalStatus

from conftest import PROPOSAL_DATA


def _flip_last_char(token):
    return token[:-1] + ("0" if token[-1] != "0" else "1")


def test_issued_tokens_are_long_random_and_stored_hashed():
    tokens = {issue_token()[0] for _ in range(50)}
    assert len(tokens) == 50

    token, token_hash = issue_token()
    assert len(token) == 64
    int(token, 16)
    assert token_hash == hash_token(token)
    assert token_hash != token


def test_token_matches_rejects_near_misses_and_blanks():
    token, token_hash = issue_token()
    assert token_matches(token_hash, token)
    assert not token_matches(token_hash, _flip_last_char(token))
    assert not token_matches(token_hash, "")
    assert not token_matches(None, token)


def test_proposal_token_stored_only_as_digest(services, sent_proposal):
    stored = services.gateway.read(Proposal, sent_proposal.entity.id)
    assert stored.client_response_token_hash == hash_token(sent_proposal.token)
    assert sent_proposal.token not in stored.client_response_token_hash
    assert sent_proposal.url.endswith(f"/proposal-response/{stored.id}?token={sent_proposal.token}")


def test_gate_unknown_proposal(services):
    with pytest.raises(NotFound):
        services.gate.verify_proposal("missing", "whatever")


def test_gate_token_not_issued_before_send(services, seed):
    proposal = services.proposals.create(seed["inquiry"].id, seed["sales"].id, dict(PROPOSAL_DATA))
    with pytest.raises(TokenNotIssued):
        services.proposals.verify_client_token(proposal.id, "a" * 64)


def test_gate_one_character_off_is_invalid(services, sent_proposal):
    with pytest.raises(TokenInvalid):
        services.proposals.verify_client_token(sent_proposal.entity.id, _flip_last_char(sent_proposal.token))


def test_gate_consumed_after_response(services, sent_proposal):
    proposal_id = sent_proposal.entity.id
    services.proposals.accept(proposal_id, sent_proposal.token)

    with pytest.raises(TokenAlreadyConsumed):
        services.proposals.verify_client_token(proposal_id, sent_proposal.token)
    with pytest.raises(TokenAlreadyConsumed):
        services.proposals.decline(proposal_id, sent_proposal.token)


def test_gate_expired_marks_proposal_expired(services, sent_proposal, clock):
    proposal_id = sent_proposal.entity.id
    clock.advance(days=15)

    with pytest.raises(TokenExpired):
        services.proposals.verify_client_token(proposal_id, sent_proposal.token)
    assert services.gateway.read(Proposal, proposal_id).status == ProposalStatus.Expired

    with pytest.raises(TokenExpired):
        services.proposals.accept(proposal_id, sent_proposal.token)


def test_csrf_round_trip():
    token = generate_csrf_token("session-1", "secret")
    assert token == generate_csrf_token("session-1", "secret")
    assert verify_csrf_token(token, "session-1", "secret")
    assert not verify_csrf_token(token, "session-2", "secret")
    assert not verify_csrf_token(token, "session-1", "other-secret")
    assert not verify_csrf_token("", "session-1", "secret")
    assert not verify_csrf_token(token, None, "secret")
