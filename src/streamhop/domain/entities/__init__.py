from .resolution import (
    ChainDefinition,
    ChallengeState,
    Deadline,
    ErrorKind,
    ExtractionResult,
    Fingerprint,
    HopResult,
    HopSpec,
    HopTrace,
    ProgressCallback,
    ProgressEvent,
    ResolutionError,
    ResolutionRequest,
    ScreenSpec,
    ServerSpec,
)
from .rules import (
    AttributeRule,
    Candidate,
    ConstructRule,
    ManifestBodyRule,
    NetworkCaptureRule,
    NotFound,
    RegexRule,
    Rule,
)

__all__ = [
    "AttributeRule",
    "Candidate",
    "ChainDefinition",
    "ChallengeState",
    "ConstructRule",
    "Deadline",
    "ErrorKind",
    "ExtractionResult",
    "Fingerprint",
    "HopResult",
    "HopSpec",
    "HopTrace",
    "ManifestBodyRule",
    "NetworkCaptureRule",
    "NotFound",
    "ProgressCallback",
    "ProgressEvent",
    "RegexRule",
    "ResolutionError",
    "ResolutionRequest",
    "Rule",
    "ScreenSpec",
    "ServerSpec",
]
