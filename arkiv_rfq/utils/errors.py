from abc import abstractmethod
from typing import Optional

from arkiv_rfq.utils.logger import LogArgs


class UserMistakes:
    code = 400
    error_owner = 'user'


class OurMistakes:
    code = 417
    error_owner = 'arkiv_rfq'


class StoreMistakes:
    code = 409
    error_owner = 'store'


class BaseRFQError(Exception):
    """common error for RFQ lifecycle operations"""

    @property
    @abstractmethod
    def msg_to_log(self):
        ...

    @property
    @abstractmethod
    def code(self):
        ...

    @property
    @abstractmethod
    def error_owner(self):
        ...

    def __init__(self, message: Optional[str] = None, **kwargs):
        super().__init__(message)
        self.message = message
        self.kwargs = kwargs

    def __str__(self):
        if self.message:
            return f'{self.msg_to_log}: {self.message}'
        return self.msg_to_log

    def __repr__(self):
        return f'{self.__class__.__name__}({self.message!r}, {self.kwargs})'

    def to_dict(self):
        return {
            'error': self.__class__.__name__,
            'reason': self.message,
            'error_owner': self.error_owner,
            **self.kwargs,
        }

    def to_log_args(self):
        return (
            f'{self.msg_to_log.lower()}: %({LogArgs.ex})s',
            {LogArgs.ex: self.message},
        )


class ValidationError(UserMistakes, BaseRFQError):
    """Input has a wrong shape or is out of the allowed range"""
    msg_to_log = 'Validation error'


class SignatureError(UserMistakes, BaseRFQError):
    """No signer configured, or the signer failed to produce an address or a signature"""
    msg_to_log = 'Signature error'

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.cause = cause


class OwnershipError(UserMistakes, BaseRFQError):
    """Caller is not the creator, or the RFQ is no longer open"""
    msg_to_log = 'Ownership error'


class RFQNotFoundError(UserMistakes, BaseRFQError):
    """No record stored under the requested id"""
    code = 404
    msg_to_log = 'RFQ not found'

    def __init__(self, rfq_id: str, **kwargs):
        super().__init__(f'no RFQ with id {rfq_id}', rfq_id=rfq_id, **kwargs)
        self.rfq_id = rfq_id


class NetworkError(StoreMistakes, BaseRFQError):
    """Store call failed after all retry attempts"""
    msg_to_log = 'Network error'

    def __init__(
        self,
        message: Optional[str] = None,
        attempts: int = 1,
        cause: Optional[BaseException] = None,
        **kwargs,
    ):
        super().__init__(message, attempts=attempts, **kwargs)
        self.attempts = attempts
        self.cause = cause

    def to_log_args(self):
        return (
            f'{self.msg_to_log.lower()} after %({LogArgs.attempt})s attempts: %({LogArgs.ex})s',
            {LogArgs.attempt: self.attempts, LogArgs.ex: repr(self.cause)},
        )


class ParseEntityError(OurMistakes, BaseRFQError):
    """Store returned a record that cannot be read as an RFQ"""
    msg_to_log = 'Cannot parse entity'
