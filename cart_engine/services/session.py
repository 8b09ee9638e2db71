# cart_engine/services/session.py


class AuthSession:
    """
    Trzyma token sesji wydany przez zewnetrzny serwis auth.
    Sam niczego nie wydaje ani nie odswieza.
    """

    def __init__(self, token: str | None = None):
        self.token = token

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    def start(self, token: str) -> None:
        self.token = token

    def end(self) -> None:
        self.token = None
