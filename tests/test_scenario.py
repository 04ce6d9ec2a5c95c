# ------------------------------------------------------------------------
# File: test_scenario.py
# Location: tests/test_scenario.py
# Description:
#     One inquiry taken all the way from proposal to on-boarded client,
#     checking the audit trail and notifications left behind.
# ------------------------------------------------------------------------

from datetime import timedelta

from salesdesk.db.models import (
    ActivityLog, CalendarEvent, Client, Contract, ContractStatus, Inquiry, Proposal, ProposalStatus
)

from conftest import PROPOSAL_DATA


def test_inquiry_to_onboarded_client(services, seed, mailer, sink, clock):
    proposals, contracts = services.proposals, services.contracts
    sales, admin = seed["sales"], seed["admin"]

    proposal = proposals.create(seed["inquiry"].id, sales.id, dict(PROPOSAL_DATA))
    proposals.reject(proposal.id, admin.id, "Add the onboarding fee")
    proposals.update(proposal.id, sales.id, {**PROPOSAL_DATA, "onboardingFee": 500})
    proposals.approve(proposal.id, admin.id)
    issued = proposals.send(proposal.id, sales.id)

    clock.advance(days=2)
    assert proposals.public_status(proposal.id, issued.token)["status"] == "sent"
    proposals.accept(proposal.id, issued.token, ip_address="203.0.113.10")
    services.dispatcher.wait_idle()

    contract = services.gateway.select_one(Contract, Contract.proposal_id == proposal.id)
    contracts.request(contract.id, sales.id, {"term": "12 months", "billing": "monthly"})
    contracts.upload_document(contract.id, admin.id, "https://files.example.com/con.pdf")
    contracts.send_to_sales(contract.id, admin.id)
    link = contracts.send_to_client(contract.id, sales.id, "ada@example.com")

    clock.advance(days=3)
    contracts.sign(contract.id, link.token, "https://files.example.com/con-signed.pdf", ip_address="203.0.113.10")
    services.dispatcher.wait_idle()

    client = services.gateway.select_one(Client, Client.email == "ada@example.com")
    assert client is not None
    assert client.contact_person == "Ada Lovelace"
    assert client.created_by == sales.id

    stored_contract = services.gateway.read(Contract, contract.id)
    assert stored_contract.status == ContractStatus.Signed
    assert stored_contract.client_id == client.id
    assert services.gateway.read(Proposal, proposal.id).status == ProposalStatus.Accepted
    assert services.gateway.read(Inquiry, seed["inquiry"].id).status == "on_boarded"

    actions = {row.action for row in services.gateway.select(ActivityLog)}
    assert {
        "proposal_created", "proposal_disapproved", "proposal_revised", "proposal_approved",
        "proposal_sent", "proposal_client_approved", "contract_created", "contract_requested",
        "contract_uploaded", "contract_sent_to_sales", "contract_sent_to_client", "contract_signed",
        "client_created_from_contract",
    } <= actions

    subjects = [mail["subject"] for mail in mailer.sent]
    assert "Proposal Disapproved" in subjects
    assert "Proposal Approved - Ready to Send" in subjects
    assert "Contract Signed" in subjects
    assert {"proposal:created", "proposal:sent", "contract:created", "contract:signed"} <= {
        event["event"] for event in sink.events
    }

    # A follow-up meeting with the new client gets its day-before reminder once.
    services.gateway.insert(CalendarEvent(
        title="Kick-off", scheduled_date=clock() + timedelta(hours=24), user_id=sales.id, client_id=client.id,
    ))
    assert services.scheduler.run_once("24h").sent == 1
    assert services.scheduler.run_once("24h").sent == 0
    services.dispatcher.wait_idle()
    kickoff = [mail for mail in mailer.to(sales.email) if mail["subject"].startswith("Reminder: Kick-off")]
    assert len(kickoff) == 1
    assert "Analytical Engines Ltd" in kickoff[0]["body"]
