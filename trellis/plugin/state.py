"""Plugin status and operation outcome enumerations."""

from enum import Enum


class Status(Enum):
    """Plugin state enumeration."""

    PENDING = "pending"
    LOADING = "loading"
    LOADED = "loaded"
    INSTALLING = "installing"
    INSTALLED = "installed"
    UPDATING = "updating"
    UPDATED = "updated"
    ERROR = "error"

    def __str__(self) -> str:
        return self.value


class UpdateOutcome(Enum):
    """Classification of a single plugin update."""

    UPDATED = "updated"
    UP_TO_DATE = "up_to_date"
    NOT_INSTALLED = "not_installed"
    ERROR_CHECKING = "error_checking"
    ERROR_CHECKING_UPDATES = "error_checking_updates"
    ERROR = "error"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value

    @property
    def failed(self) -> bool:
        return self in (
            UpdateOutcome.ERROR,
            UpdateOutcome.ERROR_CHECKING,
            UpdateOutcome.ERROR_CHECKING_UPDATES,
        )
