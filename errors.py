class MatchRoomError(Exception):
    """Base class for errors that are reported to the caller."""
    status_code = 400

    def __init__(self, message: str = None):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class RoomNotFound(MatchRoomError):
    """Room not found or has expired"""
    status_code = 404


class RoomExpired(MatchRoomError):
    """Room has expired. Please create a new room."""
    status_code = 410


class InvalidCandidate(MatchRoomError):
    """Candidate not found in room candidates"""
    status_code = 400


class InvalidKind(MatchRoomError):
    """Invalid kind"""
    status_code = 400


class TooManyTags(MatchRoomError):
    """Too many tags"""
    status_code = 400


class CodeExhaustedError(MatchRoomError):
    """Failed to generate unique room code after maximum attempts"""
    status_code = 503


class CatalogError(MatchRoomError):
    """Failed to fetch candidates from the content catalog"""
    status_code = 502


class AuthError(MatchRoomError):
    """User ID is required"""
    status_code = 401
