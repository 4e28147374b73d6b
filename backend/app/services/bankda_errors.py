class BankdaError(Exception):
    code = "bankda_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)
        self.message = message or self.code


class TransactionNotFound(BankdaError):
    code = "transaction_not_found"


class MemberNotFound(BankdaError):
    code = "member_not_found"


class InvalidTransition(BankdaError):
    code = "invalid_transition"


class CreditStateError(BankdaError):
    """Crediting was requested for a record that is not matched or manual."""

    code = "credit_state_invalid"


class ChargeFailed(BankdaError):
    code = "charge_failed"


class BankdaProviderError(Exception):
    pass


class BankdaRateLimited(BankdaProviderError):
    pass
