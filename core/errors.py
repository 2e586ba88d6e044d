"""
Error kinds raised or recorded by the booking engine.

Only SchemaNotFound is raised across service boundaries; the others are
captured into result objects and logged.
"""


class EngineError(RuntimeError):
    pass


class SchemaNotFound(EngineError):
    """A Template, Page or Section needed to interpret a booking is missing."""
    pass


class SyncFailure(EngineError):
    pass


class DisseminationPartialFailure(EngineError):
    def __init__(self, step: str, message: str):
        super().__init__(f"{step}: {message}")
        self.step = step
        self.message = message


class TriggerRuleFailure(EngineError):
    def __init__(self, trigger_id, message: str):
        super().__init__(f"trigger {trigger_id}: {message}")
        self.trigger_id = trigger_id
        self.message = message


class EmailDispatchFailure(EngineError):
    """Recipient is invalid or the mail transport refused the message."""

    def __init__(self, recipient, message: str):
        super().__init__(f"{recipient}: {message}")
        self.recipient = recipient
        self.message = message
