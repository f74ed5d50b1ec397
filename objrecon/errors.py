"""Exception types raised by the reconstruction pipeline."""


class ReconstructionError(Exception):
    """Base class for reconstruction failures."""
    pass


class SensorExhaustedError(ReconstructionError):
    """The frame source could not deliver the requested frames."""
    pass


class PipelineBusyError(ReconstructionError):
    """A request arrived while another one was still running."""
    pass


class InvalidRequestError(ReconstructionError, ValueError):
    """Malformed request parameters."""
    pass


class InvalidCloudError(ReconstructionError, ValueError):
    """Point array does not have shape (N, 3)."""
    pass


class MalformedMeshError(ReconstructionError, ValueError):
    """Mesh faces reference vertices that do not exist."""
    pass
