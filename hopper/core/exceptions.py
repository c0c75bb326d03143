"""
Error taxonomy for the RAG request pipeline.
API handlers render HopperError subclasses as {"success": false, "error": message} with the class status code.
"""


class HopperError(Exception):
    """Base error; status_code is used when the error reaches the HTTP layer."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HopperError):
    """Missing or malformed request fields. The job is never created."""

    status_code = 400


class NotFound(HopperError):
    """Unknown job identifier on status/result lookup."""

    status_code = 404


class EmbeddingUnavailable(HopperError):
    """Embedding model failed to initialize or to embed a text. Fatal to the job."""

    status_code = 503


class UpstreamModelError(HopperError):
    """Language-model call failed or returned an empty completion. Fatal to the job."""

    status_code = 502


class ClientTimeout(HopperError):
    """Polling client gave up while the job was still processing. Never reported by the server."""

    status_code = 504


class RequestFailed(HopperError):
    """Server reported the job as failed; raised by the polling client."""

    status_code = 500
