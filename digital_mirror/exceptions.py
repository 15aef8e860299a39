"""
Error taxonomy for the verification engine.

None of these are fatal: every one of them degrades to fallback tracking.
"""


class MirrorError(Exception):
    """Base class for engine errors"""


class DetectorUnavailableError(MirrorError):
    """The landmark detection capability is missing or could not be loaded"""


class DetectionFailedError(MirrorError):
    """A single detection call failed"""


class MalformedFaceRecordError(MirrorError):
    """A detector face record matched none of the accepted shapes"""
