"""Error types raised while fetching ticker prices."""


class PriceError(Exception):
    """Base class for every failure a price fetch can produce."""

    kind = "price_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class InvalidURL(PriceError):
    """The request URL could not be built."""

    kind = "invalid_url"

    def __init__(self, url: str = ""):
        super().__init__(f"Invalid URL: {url}" if url else "Invalid URL")
        self.url = url


class InvalidResponse(PriceError):
    """The response body was not the expected ``{symbol, price}`` object."""

    kind = "invalid_response"

    def __init__(self, detail: str | None = None):
        message = "Invalid response"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.detail = detail


class ServerError(PriceError):
    """The ticker endpoint answered with a non-200 status."""

    kind = "server_error"

    def __init__(self, status_code: int):
        super().__init__(f"Server error, status code: {status_code}")
        self.status_code = status_code


class InvalidPrice(PriceError):
    """The ``price`` field was not a finite decimal number."""

    kind = "invalid_price"

    def __init__(self, raw_price: str | None = None):
        super().__init__("Invalid price data")
        self.raw_price = raw_price


class NetworkError(PriceError):
    """DNS, connect, TLS, proxy or timeout failure."""

    kind = "network_error"

    def __init__(self, cause: BaseException):
        detail = str(cause) or type(cause).__name__
        super().__init__(f"Network error: {detail}")
        self.cause = cause
