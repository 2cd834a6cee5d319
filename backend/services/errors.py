"""
Error taxonomy for the IPAM core.

Every error carries the HTTP status the API layer answers with; main.py
registers a single handler for IPAMError.
"""


class IPAMError(Exception):
    """Base class for errors raised by the IPAM services."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCIDR(IPAMError, ValueError):
    """The string is not a valid IPv4 CIDR (A.B.C.D/N)."""

    status_code = 422


class SubnetTooLarge(IPAMError):
    """The network is too large to enumerate (populate refused)."""

    status_code = 400


class NotConfigured(IPAMError):
    """Controller URL or API key is missing."""

    status_code = 400


class UpstreamUnavailable(IPAMError):
    """Transport or HTTP failure talking to the controller."""

    status_code = 503


class RecordConflict(IPAMError):
    """A store-level constraint rejected an individual write."""

    status_code = 409


class NotFound(IPAMError):
    """The referenced network, address, or device does not exist."""

    status_code = 404


class SyncInProgress(IPAMError):
    """Another sync or discover run holds the sync lock."""

    status_code = 409
