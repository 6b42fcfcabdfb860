"""
Domain errors shared by the submission, query and worker paths.
"""


class PostReaderError(Exception):
    """Base class for all PostReader errors."""


class ValidationError(PostReaderError):
    """Submitted input is malformed (empty text, unknown voice, ...)."""


class NotFound(PostReaderError):
    """No job exists for the requested id."""

    def __init__(self, job_id: str):
        super().__init__(f'Job not found: {job_id}')
        self.job_id = job_id


class StoreUnavailable(PostReaderError):
    """The job store or artifact store could not be reached. Transient."""


class BusUnavailable(PostReaderError):
    """The event bus refused a publish. Transient."""


class ConversionFailure(PostReaderError):
    """The text-to-audio conversion failed or timed out. Terminal for the job."""
