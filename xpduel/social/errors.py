from xpduel.errors import InvalidInputError, NotFoundError, PreconditionFailedError


class UserNotFoundError(NotFoundError):
    message = "No user with this identifier exists."


class FriendRequestNotFoundError(NotFoundError):
    message = "The friend request no longer exists."


class AlreadyFriendsError(PreconditionFailedError):
    message = "You are already friends with this user."


class DuplicateFriendRequestError(PreconditionFailedError):
    message = "A friend request to this user is already pending."


class NotFriendsError(PreconditionFailedError):
    message = "You can only do this with a friend."


class SelfFriendRequestError(InvalidInputError):
    message = "You cannot send a friend request to yourself."
