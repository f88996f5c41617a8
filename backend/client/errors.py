"""
Error taxonomy for the POS client.

Fetch-group errors (network, parse, empty result) are retried and then
resolved from cache when possible. Quota errors are logged and ignored by the
caches. Identity mismatches never reach callers: they become cache misses.
"""


class PosClientError(Exception):
    pass


class FetchError(PosClientError):
    pass


class NetworkError(FetchError):
    pass


class ParseError(FetchError):
    pass


class EmptyResultError(FetchError):
    pass


class QuotaError(PosClientError):
    pass


class IdentityMismatchError(PosClientError):
    def __init__(self, owner: str, identity: str):
        super().__init__(f"cache owned by {owner!r}, current identity is {identity!r}")
        self.owner = owner
        self.identity = identity


class WebhookError(PosClientError):
    pass


class PaymentValidationError(PosClientError, ValueError):
    pass


class ReceiptNotFoundError(PosClientError, LookupError):
    pass


class AuthError(PosClientError):
    pass
