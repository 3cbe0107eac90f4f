"""
relay/exceptions.py

Error taxonomy for the relay services.
- ConfigurationError: bad caller input, fail fast, never retried
- ProtocolError: upstream answered with something we cannot interpret
- MalformedResponseError: a successful response whose body is not JSON
Transport failures are raised by httpx and propagate unchanged.
"""


class RelayError(Exception):
    """Base class for all relay errors."""


class ConfigurationError(RelayError, ValueError):
    """Caller-supplied configuration is invalid."""


class ConnectionNotFoundError(ConfigurationError):
    """No connection matches the requested patient identifier."""

    def __init__(self, patient_id: str) -> None:
        super().__init__(f"No connection found for patientId {patient_id}")
        self.patient_id = patient_id


class ProtocolError(RelayError, RuntimeError):
    """Upstream response does not match any known shape."""


class AuthenticationError(ProtocolError):
    """Login state machine ended without a session token."""


class MeasurementDataError(ProtocolError):
    """Telemetry record carries a code outside the known lookup tables."""


class MalformedResponseError(ProtocolError):
    """A 2xx response body could not be decoded as JSON."""
