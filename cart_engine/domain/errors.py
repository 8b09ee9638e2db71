# cart_engine/domain/errors.py


class CartError(Exception):
    """Bazowy blad domeny koszyka. `message` jest przeznaczony dla uzytkownika."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CartError):
    """Zle dane wejsciowe, nigdy nie dochodzi do sieci."""


class Unauthorized(CartError):
    """Sesja niewazna (HTTP 401)."""

    def __init__(self, message: str = "Session expired. Please log in again."):
        super().__init__(message)


class NotFound(CartError):
    """Brak koszyka na serwerze (HTTP 404), traktowany jak pusty koszyk."""

    def __init__(self, message: str = "Cart not found"):
        super().__init__(message)


class ServerError(CartError):
    """5xx, blad sieci albo timeout."""

    def __init__(
        self,
        message: str = "Server error. Please try again later.",
        status_code: int | None = None,
        retryable: bool = True,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class InvalidCoupon(CartError):
    """Kupon odrzucony przez reguly biznesowe."""


class StorageError(Exception):
    """Blad zapisu/odczytu lokalnego storage (np. quota, redis niedostepny)."""
