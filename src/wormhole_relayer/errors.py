"""
Error types raised by the relay client.

Every failure a caller is expected to handle derives from RelayerError so it
can be caught in one place. Configuration problems stay plain ValueError.
"""


class RelayerError(Exception):
    """Base class for all relay client errors."""


class InvalidSeedError(RelayerError):
    """A seed list cannot produce a derived address (too long, too many, or on-curve)."""


class AttestationParseError(RelayerError):
    """Attestation bytes are malformed or do not match what was requested.

    Attributes:
        reason: Short machine-friendly reason such as "truncated"
    """

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        self.detail = detail
        message = f"{reason}: {detail}" if detail else reason
        super().__init__(message)


class AttestationTimeoutError(RelayerError, TimeoutError):
    """The guardian network did not publish the attestation before the deadline."""

    def __init__(self, emitter_chain: int, emitter_address: str, sequence: int, timeout: float):
        self.emitter_chain = emitter_chain
        self.emitter_address = emitter_address
        self.sequence = sequence
        self.timeout = timeout
        super().__init__(
            f"Attestation {emitter_chain}/{emitter_address}/{sequence} "
            f"not available after {timeout}s"
        )


class InsufficientFundsError(RelayerError):
    """The signer cannot cover the amount, fees or gas of a submission."""


class InsufficientAllowanceError(RelayerError):
    """The bridge contract is not approved to move the requested token amount."""


class AlreadyRegisteredError(RelayerError):
    """The foreign endpoint is already registered with the same address."""


class AlreadyRedeemedError(RelayerError):
    """The attestation has already been consumed on the destination chain."""


class RegistrationVerificationFailedError(RelayerError):
    """The address read back after registration differs from the one written."""


class RpcFailureError(RelayerError):
    """A chain RPC call failed for a reason other than the cases above."""
