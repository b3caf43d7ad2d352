# talkpair/signaling/exceptions.py


class SignalingError(Exception):
    """
    한 유저의 요청에 국한된 실패. message는 그대로 클라이언트 error 이벤트로 나감
    """

    default_message = "Operation failed"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotRegistered(SignalingError):
    default_message = "User is not online"


class AlreadyQueued(SignalingError):
    default_message = "Already in queue"


class AlreadyInCall(SignalingError):
    default_message = "Already in a call"


class FriendOffline(SignalingError):
    default_message = "Friend is offline"

    def __init__(self, friend_id, message: str = None):
        self.friend_id = friend_id
        super().__init__(message)


class CallNotFound(SignalingError):
    default_message = "Call not found"


class NotAParticipant(SignalingError):
    default_message = "Not a participant of this call"


class InvalidTransition(SignalingError):
    default_message = "Call cannot change to that state"


class OperationFailed(SignalingError):
    """
    영속화 실패 등 서버 쪽 문제. 상세 원인은 로그에만 남기고 유저에게는 일반 메시지
    """
