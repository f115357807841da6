class XPDuelError(Exception):
    message = "Something went wrong."

    def __str__(self) -> str:
        detail = super().__str__()
        return detail or self.message


class NotFoundError(XPDuelError):
    message = "The requested record does not exist."


class PreconditionFailedError(XPDuelError):
    message = "The record is not in a state that allows this action."


class InvalidInputError(XPDuelError):
    message = "The request contains invalid values."


class UnauthorizedError(XPDuelError):
    message = "You are not allowed to perform this action."
