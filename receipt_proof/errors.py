# errors.py
"""Error kinds raised by the verification pipeline.

A proof that does not match the block's receipts root is NOT an error;
that is reported as ``VerificationResult.valid == False``.
"""


class ReceiptProofError(Exception):
    """Base class. ``value`` holds the offending input, if any."""

    def __init__(self, message: str, value=None):
        super().__init__(message)
        self.value = value


class ConfigError(ReceiptProofError):
    pass


class NetworkError(ReceiptProofError):
    pass


class NotFoundError(ReceiptProofError):
    pass


class MalformedInputError(ReceiptProofError):
    pass


class ReceiptUnavailableError(ReceiptProofError):
    pass


class RpcError(NetworkError):
    """The node answered with a JSON-RPC error object; retrying will not help."""
