# ------------------------------------------------------------------------
# File: test_routes.py
# Location: tests/test_routes.py
# Description:
#     HTTP surface: session auth, CSRF on unsafe methods, role checks,
#     error translation and the token-gated public routes.
# ------------------------------------------------------------------------

from salesdesk.db.models import Contract, Proposal

from conftest import PROPOSAL_DATA


def _login(client, user):
    with client.session_transaction() as sess:
        sess["user_id"] = user.id
    return client.get("/api/v1/csrf-token").get_json()["csrfToken"]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_api_requires_login(client, seed):
    response = client.post("/api/v1/proposals", json={"inquiryId": seed["inquiry"].id})
    assert response.status_code == 401


def test_unsafe_methods_require_csrf(client, seed):
    token = _login(client, seed["sales"])

    response = client.post("/api/v1/proposals", json={"inquiryId": seed["inquiry"].id})
    assert response.status_code == 403

    response = client.post(
        "/api/v1/proposals", json={"inquiryId": seed["inquiry"].id}, headers={"X-CSRF-Token": token[:-1] + "x"},
    )
    assert response.status_code == 403

    response = client.post(
        "/api/v1/proposals",
        json={"inquiryId": seed["inquiry"].id, "proposalData": PROPOSAL_DATA},
        headers={"X-CSRF-Token": token},
    )
    assert response.status_code == 201
    body = response.get_json()
    assert body["status"] == "pending"
    assert body["proposalData"]["clientName"] == "Ada Lovelace"


def test_review_routes_need_reviewer_role(client, services, seed):
    proposal = services.proposals.create(seed["inquiry"].id, seed["sales"].id, dict(PROPOSAL_DATA))
    token = _login(client, seed["sales"])

    response = client.post(f"/api/v1/proposals/{proposal.id}/approve", json={}, headers={"X-CSRF-Token": token})
    assert response.status_code == 403
    assert services.gateway.read(Proposal, proposal.id).status.value == "pending"


def test_sales_and_reviewer_flow_over_http(app, services, seed):
    sales = app.test_client()
    reviewer = app.test_client()
    sales_token = _login(sales, seed["sales"])
    reviewer_token = _login(reviewer, seed["admin"])

    created = sales.post(
        "/api/v1/proposals",
        json={"inquiryId": seed["inquiry"].id, "proposalData": PROPOSAL_DATA},
        headers={"X-CSRF-Token": sales_token},
    ).get_json()
    proposal_id = created["id"]

    early = sales.post(f"/api/v1/proposals/{proposal_id}/send", headers={"X-CSRF-Token": sales_token})
    assert early.status_code == 400
    assert early.get_json()["code"] == "wrong_state"

    no_reason = reviewer.post(
        f"/api/v1/proposals/{proposal_id}/reject", json={}, headers={"X-CSRF-Token": reviewer_token},
    )
    assert no_reason.status_code == 400

    approved = reviewer.post(
        f"/api/v1/proposals/{proposal_id}/approve", json={"adminNotes": "ok"}, headers={"X-CSRF-Token": reviewer_token},
    )
    assert approved.status_code == 200

    again = reviewer.post(f"/api/v1/proposals/{proposal_id}/approve", json={}, headers={"X-CSRF-Token": reviewer_token})
    assert again.status_code == 400
    assert again.get_json()["code"] == "already_reviewed"

    sent = sales.post(f"/api/v1/proposals/{proposal_id}/send", headers={"X-CSRF-Token": sales_token})
    assert sent.status_code == 200
    assert sent.get_json()["responseUrl"].startswith("https://desk.example.com/proposal-response/")

    fetched = sales.get(f"/api/v1/proposals/{proposal_id}")
    assert fetched.get_json()["status"] == "sent"


def test_unknown_proposal_is_404(client, seed):
    _login(client, seed["sales"])
    response = client.get("/api/v1/proposals/does-not-exist")
    assert response.status_code == 404
    assert response.get_json()["code"] == "not_found"


def test_public_proposal_routes(client, services, sent_proposal):
    proposal_id = sent_proposal.entity.id
    token = sent_proposal.token

    bad = client.get(f"/proposals/public/{proposal_id}/status?token={'0' * 64}")
    assert bad.status_code == 403
    assert bad.get_json()["code"] == "token_invalid"

    status = client.get(f"/proposals/public/{proposal_id}/status?token={token}")
    assert status.status_code == 200
    assert status.get_json()["status"] == "sent"
    assert status.get_json()["pdfUrl"] is None

    accepted = client.post(
        f"/proposals/public/{proposal_id}/approve?token={token}", headers={"X-Forwarded-For": "203.0.113.5, 10.0.0.1"},
    )
    assert accepted.status_code == 200
    assert accepted.get_json()["status"] == "accepted"
    assert services.gateway.read(Proposal, proposal_id).client_response_ip == "203.0.113.5"

    repeat = client.post(f"/proposals/public/{proposal_id}/reject?token={token}")
    assert repeat.status_code == 400
    assert repeat.get_json()["code"] == "token_already_consumed"

    services.dispatcher.wait_idle()
    assert len(services.gateway.select(Contract)) == 1


def test_public_expired_link_is_410(client, sent_proposal, clock):
    clock.advance(days=20)
    response = client.post(f"/proposals/public/{sent_proposal.entity.id}/approve?token={sent_proposal.token}")
    assert response.status_code == 410
    assert response.get_json()["code"] == "token_expired"


def test_contract_routes_through_signature(app, services, seed, sent_proposal):
    services.proposals.accept(sent_proposal.entity.id, sent_proposal.token)
    services.dispatcher.wait_idle()
    contract = services.gateway.select_one(Contract, Contract.proposal_id == sent_proposal.entity.id)

    sales = app.test_client()
    reviewer = app.test_client()
    sales_token = _login(sales, seed["sales"])
    reviewer_token = _login(reviewer, seed["admin"])
    base = f"/api/v1/contracts/{contract.id}"

    assert sales.post(f"{base}/request", json={"contractDetails": {"term": "12m"}},
                      headers={"X-CSRF-Token": sales_token}).status_code == 200

    missing = reviewer.post(f"{base}/upload", json={}, headers={"X-CSRF-Token": reviewer_token})
    assert missing.status_code == 400
    assert missing.get_json()["code"] == "artifact_missing"

    assert reviewer.post(f"{base}/upload", json={"contractPdfUrl": "https://files.example.com/c.pdf"},
                         headers={"X-CSRF-Token": reviewer_token}).status_code == 200
    assert reviewer.post(f"{base}/send-to-sales", headers={"X-CSRF-Token": reviewer_token}).status_code == 200

    sent = sales.post(f"{base}/send-to-client", json={"clientEmail": "ada@example.com"},
                      headers={"X-CSRF-Token": sales_token})
    assert sent.status_code == 200
    submission_token = sent.get_json()["submissionUrl"].split("token=")[1]

    public = app.test_client()
    status = public.get(f"/contracts/public/{contract.id}/status?token={submission_token}")
    assert status.get_json()["status"] == "sent_to_client"

    signed = public.post(
        f"/contracts/public/{contract.id}/submit?token={submission_token}",
        json={"signedContractUrl": "https://files.example.com/c-signed.pdf"},
    )
    assert signed.status_code == 200
    assert signed.get_json()["status"] == "signed"

    hardbound = sales.post(f"{base}/hardbound", json={"hardboundUrl": "https://files.example.com/hb.pdf"},
                           headers={"X-CSRF-Token": sales_token})
    assert hardbound.get_json()["status"] == "hardbound_received"


def test_public_link_for_unsent_proposal_is_403(client, services, seed):
    proposal = services.proposals.create(seed["inquiry"].id, seed["sales"].id, dict(PROPOSAL_DATA))
    response = client.get(f"/proposals/public/{proposal.id}/status?token={'0' * 64}")
    assert response.status_code == 403
    assert response.get_json()["code"] == "token_not_issued"


def test_patch_without_content_keeps_it(client, services, seed):
    proposal = services.proposals.create(seed["inquiry"].id, seed["sales"].id, dict(PROPOSAL_DATA))
    token = _login(client, seed["sales"])

    response = client.patch(
        f"/api/v1/proposals/{proposal.id}",
        json={"pdfUrl": "https://files.example.com/p.pdf"},
        headers={"X-CSRF-Token": token},
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["proposalData"] == PROPOSAL_DATA
    assert body["pdfUrl"] == "https://files.example.com/p.pdf"
