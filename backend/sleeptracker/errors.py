from typing import Iterable


class ApiError(Exception):
    status_code = 500
    headers: dict[str, str] | None = None

    def body(self) -> dict:
        return {"error": str(self)}


# Bad input, a uniqueness violation or a broken record invariant
class ValidationError(ApiError):
    status_code = 422

    def __init__(self, messages: Iterable[str]):
        self.messages = list(messages)
        super().__init__("; ".join(self.messages))

    def body(self) -> dict:
        return {"errors": self.messages}


class NotFoundError(ApiError):
    status_code = 404


# Well-formed but breaks a business rule, e.g. following yourself
class DomainRuleError(ApiError):
    status_code = 422


# The body never says which credential was wrong
class AuthError(ApiError):
    status_code = 401
    headers = {"WWW-Authenticate": "Bearer"}

    def __init__(self):
        super().__init__("Unauthorized")
