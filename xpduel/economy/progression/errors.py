from xpduel.errors import PreconditionFailedError


class ProgressionError(PreconditionFailedError):
    pass


class InsufficientFundsError(ProgressionError):
    message = "Not enough XP for this deduction."
