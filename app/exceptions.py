"""
Error taxonomy for the assessment pipeline

Hard errors carry the HTTP status they surface with. GenerationParseFailure
and EvaluationFailure are raised internally and always recovered with a
fallback value before reaching a caller.
"""


class AssessmentError(Exception):
    """Base class for all pipeline errors"""

    status_code = 500
    error_code = "assessment_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ContentUnavailable(AssessmentError):
    """Source reference could not be resolved"""
    status_code = 404
    error_code = "content_unavailable"


class EmptyContent(AssessmentError):
    """Extraction produced only whitespace"""
    status_code = 422
    error_code = "empty_content"


class ContentNotFound(Exception):
    """Raised by content stores; translated to ContentUnavailable by the extractor"""


class UpstreamCapabilityError(AssessmentError):
    """The text-completion capability could not be used"""
    status_code = 502
    error_code = "upstream_capability_error"


class NetworkError(UpstreamCapabilityError):
    error_code = "upstream_network_error"


class AuthError(UpstreamCapabilityError):
    error_code = "upstream_auth_error"


class RateLimited(UpstreamCapabilityError):
    status_code = 503
    error_code = "upstream_rate_limited"


class CompletionTimeout(UpstreamCapabilityError):
    status_code = 504
    error_code = "upstream_timeout"


class GenerationParseFailure(AssessmentError):
    error_code = "generation_parse_failure"


class EvaluationFailure(AssessmentError):
    error_code = "evaluation_failure"


class PersistenceFailure(AssessmentError):
    status_code = 503
    error_code = "persistence_failure"


class ResourceNotFound(AssessmentError):
    status_code = 404
    error_code = "not_found"


class InvalidStatusTransition(AssessmentError):
    status_code = 409
    error_code = "invalid_status_transition"
