class AdvisoryError(Exception):
    """Base class for errors the advisory flow surfaces to callers."""


class NotFoundError(AdvisoryError):
    def __init__(self, user_id: str):
        super().__init__(f"User not found: {user_id}")
        self.user_id = user_id


class InvalidIntentError(AdvisoryError):
    def __init__(self, intent: object):
        super().__init__(f"Invalid advisory type: {intent!r}")
        self.intent = intent
