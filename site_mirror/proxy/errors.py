from typing import Optional


class ProxyError(Exception):
    pass


class UpstreamUnreachable(ProxyError):
    """The upstream could not be reached before any response was committed."""

    def __init__(self, message: str, *, url: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.url = url
        self.cause = cause


class UpstreamStreamError(ProxyError):
    """The upstream body failed after status and headers were sent to the client."""

    def __init__(self, message: str, *, url: str, bytes_sent: int = 0):
        super().__init__(message)
        self.url = url
        self.bytes_sent = bytes_sent


class RewriteError(ProxyError):
    def __init__(self, message: str, *, rule: Optional[str] = None):
        super().__init__(message)
        self.rule = rule
