class AccountNotFoundError(LookupError):
    """Raised when an operation names an account that does not exist."""

    def __init__(self, account_id: int) -> None:
        super().__init__(f"Account {account_id} not found.")
        self.account_id = account_id
