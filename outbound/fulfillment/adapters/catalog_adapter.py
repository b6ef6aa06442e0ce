"""
Catalog Adapter: product attributes the allocation engine needs.
"""

from abc import ABC, abstractmethod
from typing import Dict, Optional


class CatalogAdapterInterface(ABC):

    @abstractmethod
    def get_safety_buffer_days(self, tenant_id, product_id) -> int:
        """
        Minimum remaining shelf life, in days, a lot must have to be allocated.

        Returns 0 when the product carries no buffer.
        """
        pass


class MockCatalogAdapter(CatalogAdapterInterface):
    """
    Dictionary-backed catalog for testing and development.

    Keys are product ids (as strings); unknown products have no buffer.
    """

    def __init__(self, safety_buffers: Optional[Dict[str, int]] = None):
        self.safety_buffers = {str(k): v for k, v in (safety_buffers or {}).items()}

    def get_safety_buffer_days(self, tenant_id, product_id) -> int:
        return int(self.safety_buffers.get(str(product_id), 0))

    def set_safety_buffer_days(self, product_id, days: int):
        self.safety_buffers[str(product_id)] = days
