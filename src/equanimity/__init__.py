"""equanimity - give every other driver the same paint in the simulator."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("equanimity-paint")
except PackageNotFoundError:
    __version__ = "0+local"

from equanimity.config import EquanimityConfig
from equanimity.dispatcher import ReloadDispatcher
from equanimity.exceptions import (
    EquanimityConfigError,
    EquanimityError,
    EquanimityInstanceError,
    EquanimityProvisionError,
    EquanimityReloadError,
    EquanimitySourceError,
)
from equanimity.models import ParticipantDescriptor, ReloadRequest, SessionSnapshot
from equanimity.options import Options, load_options
from equanimity.provisioner import AssetCategory, AssetProvisioner, ProvisionResult
from equanimity.source import SimEvent, SimEventKind, SimSource
from equanimity.state.cache import ParticipantCache
from equanimity.tracker import ConnectionState, SessionContext, SessionTracker

__all__ = [
    "__version__",
    "AssetCategory",
    "AssetProvisioner",
    "ConnectionState",
    "EquanimityConfig",
    "EquanimityConfigError",
    "EquanimityError",
    "EquanimityInstanceError",
    "EquanimityProvisionError",
    "EquanimityReloadError",
    "EquanimitySourceError",
    "Options",
    "ParticipantCache",
    "ParticipantDescriptor",
    "ProvisionResult",
    "ReloadDispatcher",
    "ReloadRequest",
    "SessionContext",
    "SessionSnapshot",
    "SessionTracker",
    "SimEvent",
    "SimEventKind",
    "SimSource",
    "load_options",
]
