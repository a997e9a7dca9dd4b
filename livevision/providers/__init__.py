"""Vision providers behind a single request/result contract.

Key components:
- base: ProviderRequest, AnalysisResult, BaseProvider
- local: LocalServerProvider for the supervised local model server
- cloud: CloudProvider for the remote vision API
- registry: provider lookup by id
"""

from .base import (
    AnalysisResult,
    BaseProvider,
    CaptionLength,
    OperationKind,
    ProviderRequest,
    TriggerSignal,
)
from .cloud import CloudProvider
from .local import LocalServerProvider
from .registry import get_provider, get_providers, reset_providers

__all__ = [
    "AnalysisResult",
    "BaseProvider",
    "CaptionLength",
    "OperationKind",
    "ProviderRequest",
    "TriggerSignal",
    "CloudProvider",
    "LocalServerProvider",
    "get_provider",
    "get_providers",
    "reset_providers",
]
