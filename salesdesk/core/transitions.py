"""
Shared machinery for the proposal and contract state machines.

A transition is a single conditional write: the new status and its fields
are applied only if the row still has the expected status (plus any
ownership or artifact predicates). When zero rows change, the row is read
again to tell the caller *why*: gone, moved on, or not theirs. Failed
transitions are never retried, because a retry could apply a stale
decision.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, NamedTuple, Optional

from salesdesk.core.errors import NotFound, NotOwner, WrongState
from salesdesk.logging_config import configure_logging

logger = configure_logging("salesdesk.core.transitions", "salesdesk.log")


class TokenIssued(NamedTuple):
    """Result of a transition that hands a secret link to an external party."""

    entity: Any
    token: str
    url: str


def _as_tuple(expected):
    if isinstance(expected, (tuple, list, set, frozenset)):
        return tuple(expected)
    return (expected,)


class TransitionEngine:
    entity_type = ""
    model = None
    owner_field = "requested_by"

    def __init__(self, gateway, notifier, settings, gate, clock=None):
        self.gateway = gateway
        self.notifier = notifier
        self.settings = settings
        self.gate = gate
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def now(self) -> datetime:
        return self.clock()

    def get(self, entity_id):
        entity = self.gateway.read(self.model, entity_id)
        if entity is None:
            raise NotFound(f"{self.entity_type.capitalize()} not found", entity_type=self.entity_type, entity_id=entity_id)
        return entity

    def _transition(
        self,
        entity_id,
        to_status,
        from_status,
        values: Optional[dict] = None,
        owner: Optional[str] = None,
        expected: Optional[dict] = None,
        wrong_state: type = WrongState,
        wrong_state_message: Optional[str] = None,
    ):
        conditions = {"status": from_status, **(expected or {})}
        if owner is not None:
            conditions[self.owner_field] = owner

        now = self.now()
        changes = {"status": to_status, "updated_at": now, **(values or {})}

        rows = self.gateway.conditional_update(self.model, entity_id, changes, conditions)
        if rows == 0:
            raise self._classify_failure(entity_id, conditions, wrong_state, wrong_state_message)

        logger.info(
            "%s %s: %s -> %s",
            self.entity_type, entity_id,
            "/".join(s.value for s in _as_tuple(from_status)), to_status.value,
        )
        return self.get(entity_id)

    def _classify_failure(self, entity_id, conditions, wrong_state, wrong_state_message):
        current = self.gateway.read(self.model, entity_id)
        if current is None:
            return NotFound(f"{self.entity_type.capitalize()} not found", entity_type=self.entity_type, entity_id=entity_id)

        precondition_error = self._precondition_error(current, conditions)
        if precondition_error is not None:
            return precondition_error

        if current.status not in _as_tuple(conditions["status"]):
            return wrong_state(
                wrong_state_message,
                entity_type=self.entity_type,
                entity_id=entity_id,
                current_status=current.status.value,
            )

        owner = conditions.get(self.owner_field)
        if owner is not None and getattr(current, self.owner_field) != owner:
            return NotOwner(entity_type=self.entity_type, entity_id=entity_id)

        # The row matched on re-read, so it changed between the write and the read.
        return wrong_state(
            wrong_state_message,
            entity_type=self.entity_type,
            entity_id=entity_id,
            current_status=current.status.value,
        )

    def _precondition_error(self, current, conditions):
        """Hook for entity-specific classification that takes priority over the status check."""
        return None

    def _public_url(self, path):
        return f"{self.settings.public_base_url.rstrip('/')}{path}"
