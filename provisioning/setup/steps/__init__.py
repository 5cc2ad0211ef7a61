"""Setup step handlers in run order."""

from .grants import GrantsStep
from .namespace import NamespaceStep
from .stage import StageStep
from .trust import TrustStep
from .verify import VerifyStep

__all__ = [
    "NamespaceStep",
    "TrustStep",
    "StageStep",
    "GrantsStep",
    "VerifyStep",
]
