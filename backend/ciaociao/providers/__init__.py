from ciaociao.providers.banxico import BanxicoProvider
from ciaociao.providers.base import PriceProvider
from ciaociao.providers.exchangerate_api import ExchangeRateApiProvider
from ciaociao.providers.freecurrencyapi import FreeCurrencyApiProvider
from ciaociao.providers.goldapi import GoldApiProvider
from ciaociao.providers.metalpriceapi import MetalpriceApiProvider
from ciaociao.providers.metals_dev import MetalsDevProvider
from ciaociao.providers.open_er_api import OpenErApiProvider
from ciaociao.providers.registry import ProviderRegistry, ProviderSlot, build_provider_registry

__all__ = [
    "PriceProvider",
    "MetalpriceApiProvider",
    "MetalsDevProvider",
    "GoldApiProvider",
    "ExchangeRateApiProvider",
    "OpenErApiProvider",
    "FreeCurrencyApiProvider",
    "BanxicoProvider",
    "ProviderRegistry",
    "ProviderSlot",
    "build_provider_registry",
]
