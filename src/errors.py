"""
BudgetBuddy - Error taxonomy

Every failure the engine reports carries the HTTP status the API layer
answers with. "Doesn't exist" and "belongs to someone else" are
deliberately the same error.
"""


class BudgetBuddyError(Exception):
    status_code = 500

    def __init__(self, message):
        super().__init__(message)
        self.message = message


class ValidationFailure(BudgetBuddyError):
    status_code = 400


class AuthenticationFailure(BudgetBuddyError):
    status_code = 401


class NotFoundOrUnauthorized(BudgetBuddyError):
    status_code = 404


class ConflictFailure(BudgetBuddyError):
    status_code = 409


class PersistenceFailure(BudgetBuddyError):
    """The store rejected or failed a statement; the operation was rolled back."""
    status_code = 500
