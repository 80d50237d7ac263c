"""Adapters package - one adapter per upstream catalog provider.

Each adapter maps its provider's payloads into the canonical Drama/Episode
model; ``create_adapter`` picks the right one for a platform.
"""

from typing import Any, Dict, Type

from ..canonical import Platform
from .base import HomePageCache, ProviderAdapter
from .dramabox import DramaboxAdapter
from .melolo import MeloloAdapter
from .netshort import NetshortAdapter
from .reelife import ReelifeAdapter

ADAPTERS: Dict[Platform, Type[ProviderAdapter]] = {
    Platform.DRAMABOX: DramaboxAdapter,
    Platform.MELOLO: MeloloAdapter,
    Platform.NETSHORT: NetshortAdapter,
    Platform.REELIFE: ReelifeAdapter,
}


def create_adapter(platform: Platform, **kwargs: Any) -> ProviderAdapter:
    """Instantiate the adapter for ``platform`` (kwargs go to the adapter)."""
    return ADAPTERS[Platform(platform)](**kwargs)


__all__ = [
    'ADAPTERS',
    'DramaboxAdapter',
    'HomePageCache',
    'MeloloAdapter',
    'NetshortAdapter',
    'ProviderAdapter',
    'ReelifeAdapter',
    'create_adapter',
]
