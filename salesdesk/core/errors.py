"""
Typed failures raised by the transition engine and the token gate.

Every ``TransitionError`` is returned synchronously to the caller that
attempted the transition. ``SideEffectFailure`` is different: it only ever
travels as far as the fan-out boundary, where it is logged.
"""


class SalesdeskError(Exception):
    """Base class for all salesdesk errors."""


class ConfigurationError(SalesdeskError):
    pass


class TransitionError(SalesdeskError):
    status_code = 400
    code = "transition_error"
    public_message = "The request could not be completed."

    def __init__(self, message=None, *, entity_type=None, entity_id=None, current_status=None):
        self.message = message or self.public_message
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        super().__init__(self.message)

    def to_dict(self):
        body = {"error": self.message, "code": self.code}
        if self.current_status is not None:
            body["status"] = self.current_status
        return body


class NotFound(TransitionError):
    status_code = 404
    code = "not_found"
    public_message = "Not found."


class WrongState(TransitionError):
    status_code = 400
    code = "wrong_state"
    public_message = "This item is no longer in a state that allows this action."


class AlreadyReviewed(WrongState):
    code = "already_reviewed"
    public_message = "Proposal already reviewed."


class AlreadyExists(WrongState):
    code = "already_exists"
    public_message = "A contract already exists for this proposal."


class NotOwner(TransitionError):
    status_code = 403
    code = "not_owner"
    public_message = "Only the owning sales person can perform this action."


class TokenError(TransitionError):
    """Failures of the token gate. Messages are shown to external clients."""


class TokenNotIssued(TokenError):
    status_code = 403
    code = "token_not_issued"
    public_message = "This link is not active yet."


class TokenInvalid(TokenError):
    status_code = 403
    code = "token_invalid"
    public_message = "This link is invalid."


class TokenExpired(TokenError):
    status_code = 410
    code = "token_expired"
    public_message = "This link has expired. Please contact us for an updated copy."


class TokenAlreadyConsumed(TokenError):
    status_code = 400
    code = "token_already_consumed"
    public_message = "You have already responded to this link."


class ArtifactMissing(TransitionError):
    status_code = 400
    code = "artifact_missing"
    public_message = "The contract document has not been uploaded or generated yet."


class SideEffectFailure(SalesdeskError):
    """A background effect failed after its transition committed."""

    def __init__(self, effect_name, cause):
        self.effect_name = effect_name
        self.cause = cause
        super().__init__(f"Side effect '{effect_name}' failed: {cause}")
