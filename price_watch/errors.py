"""Error taxonomy of the price watch engine.

None of these is fatal to the scheduler loop: provider errors become
"unavailable" report sections, delivery and store errors are logged and
the affected job is retried on a later tick.
"""


class PriceWatchError(Exception):
    """Base class for all price watch errors."""


class ProviderError(PriceWatchError):
    """A price provider failed to return usable data."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(message)


class DeliveryError(PriceWatchError):
    """The notification sender reported a failed delivery."""


class StoreListError(PriceWatchError):
    """Active jobs could not be enumerated from the job store."""


class StoreWriteError(PriceWatchError):
    """A job's last_run could not be persisted."""
