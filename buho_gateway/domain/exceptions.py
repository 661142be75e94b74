"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class Unauthenticated(DomainException):
    """No valid session for an operation that needs a user"""

    pass


class ProviderError(DomainException):
    """External provider call failed.

    ``retryable`` separates transient failures (network, rate limit, timeout)
    from permanent ones (revoked or invalid credential).
    """

    def __init__(self, message: str, code: str = "PROVIDER_ERROR", retryable: bool = False):
        super().__init__(message)
        self.code = code
        self.retryable = retryable


class ProviderUnavailable(ProviderError):
    """External provider is unreachable"""

    def __init__(self, message: str, code: str = "PROVIDER_UNAVAILABLE"):
        super().__init__(message, code=code, retryable=True)


class ProviderRejected(ProviderError):
    """Provider refused the request for this user"""

    def __init__(self, message: str, code: str = "PROVIDER_REJECTED"):
        super().__init__(message, code=code, retryable=False)


class InvalidToken(ProviderError):
    """Public token is expired or already consumed; the user has to re-link"""

    def __init__(self, message: str, code: str = "INVALID_PUBLIC_TOKEN"):
        super().__init__(message, code=code, retryable=False)


class InvalidArgument(DomainException):
    """Caller passed an argument outside the accepted range"""

    pass


class AccountNotFound(DomainException):
    """Requested account is not among the user's linked accounts"""

    pass
