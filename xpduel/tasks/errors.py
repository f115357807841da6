from xpduel.errors import InvalidInputError, NotFoundError, PreconditionFailedError


class TaskNotFoundError(NotFoundError):
    message = "Task not found."


class TaskStepNotFoundError(NotFoundError):
    message = "Task step not found."


class TaskValidationError(InvalidInputError):
    message = "Task text and due date are required."


class DuelTaskEditError(PreconditionFailedError):
    message = "Duel tasks can only be completed, not edited."
