"""
Error types raised by the bundling engine.

Lower layers (curve math, instruction building, decoding) raise these and never
catch them. The orchestrator decides whether a failure skips one participant,
fails one chunk, or aborts the operation.
"""


class BundlerError(Exception):
    """Base class for every error raised by the engine."""


class AddressError(BundlerError, ValueError):
    """An address string or byte sequence is not a valid public key."""


class AccountLayoutError(BundlerError):
    """A fetched account is missing or shorter than its fixed layout."""


class InvalidAmountError(BundlerError, ValueError):
    """An amount is non-positive, out of range, or smaller than its fee."""


class CurveMathError(BundlerError, ArithmeticError):
    """Overflow, division by zero, or an empty reserve in a curve computation."""


class StateReadError(BundlerError):
    """On-chain state could not be read."""


class SigningError(BundlerError):
    """The provided keys do not match the required signer slots."""


class TransactionSizeError(BundlerError):
    """A serialized transaction exceeds the network packet size."""


class ConfigError(BundlerError, ValueError):
    """Run configuration is missing a value or holds an invalid one."""


class BundleSubmissionError(BundlerError):
    """Every relay endpoint rejected a bundle."""

    def __init__(self, message: str, result=None):
        super().__init__(message)
        self.result = result
