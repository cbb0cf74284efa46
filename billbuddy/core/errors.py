"""Exceptions raised by the billing core."""


class BillingError(Exception):
    pass


class PersistenceError(BillingError):
    """A transactional write failed and was rolled back."""


class DueNotFoundError(BillingError, LookupError):
    def __init__(self, due_id: str) -> None:
        super().__init__(f"no due with id {due_id!r}")
        self.due_id = due_id


class ReadError(BillingError):
    """A history or analytics query could not be answered."""
