"""
Exception hierarchy for the Candidate Search API.

Every error carries a stable `error_code` and a `details` dict that ends up in
both the log line and the HTTP error body.
"""
from typing import Dict, Any
from fastapi import HTTPException


def _with(details: Dict[str, Any], **fields) -> Dict[str, Any]:
    """Merge the non-empty `fields` into `details`"""
    merged = dict(details or {})
    merged.update({key: value for key, value in fields.items() if value is not None and value != ""})
    return merged


class CandidateSearchError(Exception):
    """Base exception for the Candidate Search API"""

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None,
        cause: Exception = None
    ):
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }
        if self.cause:
            result["cause"] = str(self.cause)
        return result


class InvalidQueryError(CandidateSearchError):
    """The search query is missing, blank or not a string"""

    def __init__(self, message: str = "Query is required and must be a string", value: Any = None,
                 details: Dict[str, Any] = None, **kwargs):
        value_type = type(value).__name__ if value is not None else None
        super().__init__(message, error_code="INVALID_QUERY", details=_with(details, value_type=value_type), **kwargs)


class ConfigurationError(CandidateSearchError):
    """A credential, setting or store capability is missing"""

    def __init__(self, message: str, config_key: str = None, config_value: Any = None,
                 details: Dict[str, Any] = None, **kwargs):
        shown = str(config_value) if config_value is not None else None
        details = _with(details, config_key=config_key, config_value=shown)
        super().__init__(message, error_code="CONFIGURATION_ERROR", details=details, **kwargs)


class EmbeddingServiceError(CandidateSearchError):
    """The embedding service call failed"""

    def __init__(self, message: str, provider: str = None, model_name: str = None,
                 details: Dict[str, Any] = None, **kwargs):
        details = _with(details, provider=provider, model_name=model_name)
        super().__init__(message, error_code="EMBEDDING_SERVICE_ERROR", details=details, **kwargs)


class StoreError(CandidateSearchError):
    """The vector store could not be queried or updated"""

    def __init__(self, message: str, operation: str = None, collection: str = None, retriable: bool = False,
                 details: Dict[str, Any] = None, **kwargs):
        self.retriable = retriable
        details = _with(details, operation=operation, collection=collection, retriable=retriable)
        super().__init__(message, error_code="STORE_ERROR", details=details, **kwargs)


class SynthesisError(CandidateSearchError):
    """A justification could not be generated for one candidate"""

    def __init__(self, message: str, provider: str = None, model_name: str = None,
                 details: Dict[str, Any] = None, **kwargs):
        details = _with(details, provider=provider, model_name=model_name)
        super().__init__(message, error_code="SYNTHESIS_ERROR", details=details, **kwargs)


# only a bad query is the caller's fault
HTTP_STATUS = {
    InvalidQueryError: 400,
}


def map_to_http_exception(exc: CandidateSearchError) -> HTTPException:
    """HTTPException whose detail is the error body, with `error` as the message string"""
    status_code = HTTP_STATUS.get(type(exc), 500)
    return HTTPException(status_code=status_code, detail={"error": exc.message, **exc.to_dict()})
