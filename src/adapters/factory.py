from typing import Any, Dict, List, Type, Union

from ..models.cdm import VendorType
from .base import VendorAdapter
from .wellsky import WellSkyAdapter


class AdapterFactory:
    """
    Registry mapping a vendor identifier to its adapter class.

    create() always builds a fresh adapter so every login context gets its
    own transport and session. Unknown vendors fail here, before any
    network access.
    """

    def __init__(self):
        self._adapters: Dict[str, Type[VendorAdapter]] = {
            VendorType.WELLSKY.value: WellSkyAdapter,
        }

    def create(self, vendor: Union[VendorType, str], **kwargs: Any) -> VendorAdapter:
        """
        Build an adapter for `vendor`.

        Args:
            vendor: VendorType or its string value (case-insensitive)
            **kwargs: Passed to the adapter constructor (settings, http_client, ...)

        Raises:
            ValueError: If the vendor is unknown or has no adapter yet
        """
        key = self._normalize(vendor)
        adapter_cls = self._adapters.get(key)
        if adapter_cls is None:
            raise ValueError(
                f"Unsupported EMR vendor: {vendor}. Supported: {', '.join(self.supported_vendors())}"
            )
        return adapter_cls(**kwargs)

    def register_adapter(self, vendor: Union[VendorType, str], adapter_cls: Type[VendorAdapter]):
        """
        Register an adapter class for a vendor.

        Adds AxisCare, AlayaCare, etc. without modifying this class.
        """
        self._adapters[self._normalize(vendor)] = adapter_cls

    def supported_vendors(self) -> List[str]:
        return sorted(self._adapters)

    @staticmethod
    def _normalize(vendor: Union[VendorType, str]) -> str:
        return str(getattr(vendor, "value", vendor)).strip().lower()
