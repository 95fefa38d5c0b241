"""Exception hierarchy for the check-in synchronization."""


class SyncError(Exception):
    """Base class for all synchronization errors."""


# Fatal errors: abort the run before or while it is processing.


class ConfigurationError(SyncError):
    """Required configuration is missing or invalid."""


class AuthenticationFailure(SyncError):
    """A remote store rejected our credentials."""


class SourceStoreError(SyncError):
    """The chargEV DB API returned an unexpected response."""


# Per-event errors: the event is skipped and counted, the run continues.


class EventError(SyncError):
    """An error scoped to a single event."""


class UnknownEventType(EventError):
    """The payload carries a type tag we do not know."""

    def __init__(self, tag):
        super().__init__(f"ChargeEvent of type {tag!r} is not supported")
        self.tag = tag


class MalformedEvent(EventError):
    """The payload is missing fields or carries values of the wrong type."""


class NotImplementedEventType(EventError):
    """The event type is known but has no record mapping yet."""


class InvalidChargepointRef(EventError):
    """A chargepoint reference does not match chargepoint-<registry>-<id>."""


class UnsupportedRegistry(EventError):
    """The chargepoint belongs to a registry we cannot enrich from."""


class MetadataLookupFailure(EventError):
    """The registry lookup failed or returned no chargepoint."""


class RegistryError(SyncError):
    """The registry API answered with a non-ok status."""


# Record store errors.


class StoreError(SyncError):
    """Base class for record store errors."""


class StoreRequestTooLarge(StoreError):
    """A request carried more records than the store accepts at once."""

    def __init__(self, size: int, max_size: int):
        super().__init__(f"request with {size} record(s) exceeds max size {max_size}")
        self.size = size
        self.max_size = max_size


class StoreWriteConflict(StoreError):
    """A write was rejected because the record changed since it was read."""

    def __init__(self, record_name: str, message: str | None = None):
        super().__init__(message or f"record {record_name!r} was modified concurrently")
        self.record_name = record_name
