"""Typed errors raised by the reconciliation engine.

Every error carries a stable numeric ``code`` so callers (route handlers, the CLI)
can map it to a user-facing response without string matching, and an optional
``detail`` with request-specific context.
"""


class FulfillmentError(Exception):
    """Base exception for the reconciliation engine"""

    code = 10000
    message = "Fulfillment engine error"

    def __init__(self, detail: str | None = None):
        self.detail = detail
        super().__init__(f"{self.message}: {detail}" if detail else self.message)


# Configuration


class ConfigurationError(FulfillmentError):
    """Missing or invalid acquisition configuration. Never retried automatically."""

    code = 10610
    message = "Invalid acquisition configuration"


class NoInstancesConfigured(ConfigurationError):
    code = 10600
    message = "No acquisition instances configured"

    def __init__(self, service_type: str, detail: str | None = None):
        self.service_type = service_type
        if service_type == "sonarr":
            self.code = 10601
        super().__init__(detail or f"no {service_type} instances configured")


class InvalidQualityProfile(ConfigurationError):
    code = 10602
    message = "Invalid quality profile"


# Upstream connectivity


class UpstreamConnectionError(FulfillmentError):
    code = 10603
    message = "Upstream service unreachable"


class AcquisitionConnectionError(UpstreamConnectionError):
    message = "Failed to connect to acquisition service"

    def __init__(self, service_type: str, detail: str | None = None):
        self.service_type = service_type
        if service_type == "sonarr":
            self.code = 10604
        super().__init__(detail)


class LibraryConnectionError(UpstreamConnectionError):
    code = 10605
    message = "Failed to query the library index"


class AcquisitionRejected(FulfillmentError):
    code = 10630
    message = "Acquisition service rejected the submission"

    def __init__(self, service_type: str, detail: str | None = None):
        self.service_type = service_type
        if service_type == "sonarr":
            self.code = 10631
        super().__init__(detail)


# Request state and data


class InvalidMediaType(FulfillmentError):
    code = 10611
    message = "Unsupported media type"


class MissingExternalID(FulfillmentError):
    code = 10612
    message = "Request has no TMDB ID"


class RequestNotApproved(FulfillmentError):
    code = 10614
    message = "Request is not approved"


class SeasonParsingFailed(FulfillmentError):
    code = 10615
    message = "Failed to parse the requested seasons"


class RequestNotFound(FulfillmentError):
    code = 10616
    message = "Request not found"


class EngineNotRunning(FulfillmentError):
    code = 10650
    message = "Reconciliation engine is not running"


class StorageUnavailable(FulfillmentError):
    code = 10651
    message = "Database is not reachable"
