"""Exception types raised by the VRChat -> VRM conversion pipeline.

Every failure that aborts a conversion is one of these. The orchestrator
wraps anything else (an exception escaping the normalizer, the mesh
combiner, the exporter...) in ConversionFailure so callers only need to
handle ConverterError.
"""


class ConverterError(Exception):
    """Base exception for avatar conversion errors."""
    pass


class ConfigurationError(ConverterError):
    """The source avatar is missing something the pipeline needs.

    Raised for absent humanoid bones (Head, LeftHand, RightHand), a missing
    avatar descriptor or Animator, and malformed expression bindings.
    """
    pass


class ResourceError(ConverterError):
    """Temporary storage or the output file could not be created or written."""
    pass


class ConversionFailure(ConverterError):
    """Unexpected failure raised inside a pipeline stage.

    Attributes:
        stage: name of the ConversionState that was running.
        cause: the original exception (also chained as __cause__).
    """

    def __init__(self, stage, cause):
        self.stage = stage
        self.cause = cause
        super().__init__(f"{stage} failed: {type(cause).__name__}: {cause}")
