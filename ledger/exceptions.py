# ----------------------------------------------------------------------------------
# Ledger exception taxonomy. Each class carries the HTTP status and title the
# app-level error handler puts into the response envelope.
# ----------------------------------------------------------------------------------


class LedgerError(Exception):
    status_code = 400
    title = "Error"

    def __init__(self, message=None, data=None):
        super().__init__(message or self.title)
        self.message = message or self.title
        self.data = data


class ValidationError(LedgerError):
    status_code = 400
    title = "Validation Error"


class Unauthorized(LedgerError):
    status_code = 401
    title = "Unauthorized"


class Forbidden(LedgerError):
    status_code = 403
    title = "Forbidden"


class NotFound(LedgerError):
    status_code = 404
    title = "Not Found"


class Conflict(LedgerError):
    status_code = 409
    title = "Conflict"


class AlreadyCompleted(Conflict):
    status_code = 400
    title = "Already Completed"


class AlreadyProcessed(Conflict):
    status_code = 400
    title = "Already Processed"


class DuplicateReferralCode(Conflict):
    title = "Duplicate Referral Code"


class InsufficientBalance(LedgerError):
    status_code = 400
    title = "Insufficient Balance"


class DailyLimitReached(LedgerError):
    status_code = 400
    title = "Daily Limit Reached"


class InternalError(LedgerError):
    status_code = 500
    title = "Internal Server Error"
