from __future__ import annotations


class IngestionError(Exception):
    """Base class for webhook ingestion failures."""


class AuthenticationError(IngestionError):
    """The webhook signature is missing or does not match the app secret."""


class MalformedPayloadError(IngestionError):
    """The webhook body is not JSON or does not have the expected shape."""


class UnknownOrganizationError(IngestionError):
    def __init__(self, phone_number_id: str | None) -> None:
        super().__init__(f"No organization for phone_number_id {phone_number_id!r}")
        self.phone_number_id = phone_number_id


class PersistenceError(IngestionError):
    """A single unit could not be written (constraint race, timeout, lost connection)."""
