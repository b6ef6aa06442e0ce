"""
Carrier Adapter for outbound fulfillment.

Label generation belongs to the carrier; the pipeline only needs a tracking
number and a label location back.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Any, Dict

from django.conf import settings


class CarrierAdapterInterface(ABC):
    """
    Interface for carrier label services.
    """

    @abstractmethod
    def generate_label(self, context: Dict[str, Any]) -> Dict[str, str]:
        """
        Request a shipping label.

        Args:
            context: Label request with ``pack_task_id``, ``order_number``,
                ``carrier``, ``service_level``, ``shipping_address`` and
                ``cartons`` (number, weight, dimensions)

        Returns:
            {"tracking_number": str, "label_url": str}

        Raises:
            Any exception; callers wrap it in DependencyFailureException.
        """
        pass


class MockCarrierAdapter(CarrierAdapterInterface):
    """
    Deterministic mock implementation for testing and development.

    The tracking number is the first three letters of the carrier followed by
    a digest of the pack task id, so repeated requests yield the same label.
    """

    def generate_label(self, context: Dict[str, Any]) -> Dict[str, str]:
        carrier = (context.get("carrier") or "FEDEX").upper()
        pack_task_id = str(context["pack_task_id"])
        digest = hashlib.sha1(pack_task_id.encode("utf-8")).hexdigest()[:12].upper()

        template = settings.FULFILLMENT.get("LABEL_URL_TEMPLATE", "/labels/{pack_task_id}.pdf")
        return {
            "tracking_number": f"{carrier[:3]}{digest}",
            "label_url": template.format(pack_task_id=pack_task_id),
        }
