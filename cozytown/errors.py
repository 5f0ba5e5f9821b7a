# cozytown/errors.py
from __future__ import annotations


class CozyError(ValueError):
    """Base for every error the API reports to the caller."""

    status_code = 400


# ---------- contribution protocol ----------

class ContributionError(CozyError):
    pass


class InvalidAmount(ContributionError):
    pass


class InsufficientBalance(ContributionError):
    pass


class CapExceeded(ContributionError):
    status_code = 409


class SlotTaken(ContributionError):
    status_code = 409


class RequestIdReused(ContributionError):
    """The request id already belongs to a different contribution."""

    status_code = 409


class CommitFailed(ContributionError):
    """Commit did not go through after retries. State may be re-read to confirm."""

    status_code = 503


# internal to the commit loop, never reach the API

class StaleWrite(Exception):
    pass


class StorageError(Exception):
    pass


# ---------- lookups / auth / input ----------

class NotFound(CozyError):
    status_code = 404


class TileNotFound(NotFound):
    pass


class AuthError(CozyError):
    status_code = 401


class ValidationFailed(CozyError):
    pass
