from typing import Dict, Any

NOT_CONNECTED_MESSAGE = "Not connected to Snowflake. Please connect first."
SELECTION_REQUIRED_MESSAGE = "No database or schema selected. Please select both first."

class BaseAppException(Exception):
    """Base exception for application"""

    status_code = 400

    def __init__(self, message: str, code: str = None, details: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

class NotConnectedError(BaseAppException):
    """Raised when a session has no usable Snowflake connection"""

    def __init__(self, message: str = NOT_CONNECTED_MESSAGE, **kwargs):
        super().__init__(message, **kwargs)

class SelectionRequiredError(BaseAppException):
    """Raised when a tool needs a database and schema to be selected"""

    def __init__(self, message: str = SELECTION_REQUIRED_MESSAGE, **kwargs):
        super().__init__(message, **kwargs)

class QueryExecutionError(BaseAppException):
    """Warehouse driver failure; the message is the driver's own text"""

class LLMUnavailableError(BaseAppException):
    status_code = 503

class NotFoundError(BaseAppException):
    status_code = 404

class ValidationFailedError(BaseAppException):
    pass
