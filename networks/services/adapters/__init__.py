"""
Affiliate network adapters, one per supported network.

Usage::

    from networks.services.adapters import ADAPTERS
    adapter = ADAPTERS[NetworkType.CJ](config)
"""

from networks.types import NetworkType

from .base import NetworkAdapter, build_link, requires_capability
from .shareasale import ShareASaleAdapter
from .cj import CJAdapter
from .impact import ImpactAdapter
from .rakuten import RakutenAdapter

ADAPTERS = {
    NetworkType.SHAREASALE: ShareASaleAdapter,
    NetworkType.CJ: CJAdapter,
    NetworkType.IMPACT: ImpactAdapter,
    NetworkType.RAKUTEN: RakutenAdapter,
}

__all__ = [
    "ADAPTERS",
    "NetworkAdapter",
    "build_link",
    "requires_capability",
    "ShareASaleAdapter",
    "CJAdapter",
    "ImpactAdapter",
    "RakutenAdapter",
]
