class MatchError(Exception):
    """Base class for every error the matching engine raises to its caller."""

    kind = "match_error"


class InvalidInputError(MatchError):
    kind = "invalid_input"


class NotFoundError(MatchError):
    kind = "not_found"

    def __init__(self, entity: str, entity_id: str):
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class ConflictError(MatchError):
    kind = "conflict"


class InvalidStateError(MatchError):
    """
    Raised when a transition is requested from the wrong state.

    For attempts this is the normal result of losing an accept/decline race,
    or of responding after the deadline (state == "expired"). `just_expired`
    is True only for the call that performed the lazy expiry.
    """

    kind = "invalid_state"

    def __init__(self, entity: str, entity_id: str, state: str, just_expired: bool = False):
        super().__init__(f"{entity} {entity_id} is {state}")
        self.entity = entity
        self.entity_id = entity_id
        self.state = state
        self.just_expired = just_expired
