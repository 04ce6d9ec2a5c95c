# ------------------------------------------------------------------------
# File: test_dispatcher.py
# Location: tests/test_dispatcher.py
# Description:
#     Background effects: failures stay isolated from the transition that
#     queued them and from each other; the audit write is retried.
# ------------------------------------------------------------------------

import logging
import threading

import pytest

from salesdesk.core.dispatcher import Effect, EffectDispatcher
from salesdesk.core.errors import SideEffectFailure
from salesdesk.core.notifications import ActivityLogger
from salesdesk.db.models import ActivityLog, Proposal, ProposalStatus

from conftest import PROPOSAL_DATA, FailingEmailSender


def test_failing_effect_does_not_affect_siblings(caplog):
    dispatcher = EffectDispatcher(max_workers=2)
    done = threading.Event()

    def explode():
        raise ValueError("boom")

    with caplog.at_level(logging.ERROR, logger="salesdesk.core.dispatcher"):
        dispatcher.dispatch(Effect("explode", explode), None, Effect("ok", done.set))
        assert dispatcher.wait_idle(timeout=5)
    dispatcher.shutdown()

    assert done.is_set()
    assert len(dispatcher.failures) == 1
    failure = dispatcher.failures[0]
    assert isinstance(failure, SideEffectFailure)
    assert failure.effect_name == "explode"
    assert isinstance(failure.cause, ValueError)
    assert "Side effect 'explode' failed" in caplog.text


def test_wait_idle_covers_effects_queued_by_effects():
    dispatcher = EffectDispatcher(max_workers=2)
    seen = []

    def inner():
        seen.append("inner")

    def outer():
        seen.append("outer")
        dispatcher.dispatch(Effect("inner", inner))

    dispatcher.dispatch(Effect("outer", outer))
    assert dispatcher.wait_idle(timeout=5)
    dispatcher.shutdown()
    assert seen == ["outer", "inner"]


def test_email_outage_does_not_fail_the_transition(services, seed):
    services.notifier.email_sender = FailingEmailSender()
    proposal = services.proposals.create(seed["inquiry"].id, seed["sales"].id, dict(PROPOSAL_DATA))

    approved = services.proposals.approve(proposal.id, seed["admin"].id)
    services.dispatcher.wait_idle()

    assert approved.status == ProposalStatus.Approved
    assert services.gateway.read(Proposal, proposal.id).status == ProposalStatus.Approved
    assert [f.effect_name for f in services.dispatcher.failures] == ["email:proposal_approved"]

    actions = [row.action for row in services.gateway.select(ActivityLog, ActivityLog.entity_id == proposal.id)]
    assert "proposal_approved" in actions


def test_activity_logger_retries_then_succeeds(services):
    gateway = services.gateway
    real_insert = gateway.insert
    attempts = []

    class FlakyGateway:
        def insert(self, obj):
            attempts.append(obj.action)
            if len(attempts) < 3:
                raise RuntimeError("database is locked")
            return real_insert(obj)

    ActivityLogger(FlakyGateway(), max_attempts=3, backoff_seconds=0).log("proposal_created", "proposal", "p-1")

    assert len(attempts) == 3
    rows = gateway.select(ActivityLog, ActivityLog.entity_id == "p-1")
    assert [row.action for row in rows] == ["proposal_created"]


def test_activity_logger_gives_up_after_max_attempts():
    class DownGateway:
        calls = 0

        def insert(self, obj):
            DownGateway.calls += 1
            raise RuntimeError("database is down")

    logger = ActivityLogger(DownGateway(), max_attempts=2, backoff_seconds=0)
    with pytest.raises(RuntimeError):
        logger.log("proposal_created", "proposal", "p-1")
    assert DownGateway.calls == 2


def test_dispatch_after_shutdown_is_recorded_not_raised(caplog):
    dispatcher = EffectDispatcher(max_workers=1)
    dispatcher.shutdown()
    ran = threading.Event()

    with caplog.at_level(logging.ERROR, logger="salesdesk.core.dispatcher"):
        dispatcher.dispatch(Effect("late", ran.set))

    assert not ran.is_set()
    assert [failure.effect_name for failure in dispatcher.failures] == ["late"]
    assert isinstance(dispatcher.failures[0].cause, RuntimeError)
    assert "Side effect 'late' failed" in caplog.text
    assert dispatcher.wait_idle(timeout=1)


def test_transition_commits_after_dispatcher_shutdown(services, seed):
    proposal = services.proposals.create(seed["inquiry"].id, seed["sales"].id, dict(PROPOSAL_DATA))
    services.dispatcher.shutdown()

    approved = services.proposals.approve(proposal.id, seed["admin"].id)

    assert approved.status == ProposalStatus.Approved
    assert services.gateway.read(Proposal, proposal.id).status == ProposalStatus.Approved
    assert any(failure.effect_name.startswith("activity:") for failure in services.dispatcher.failures)
