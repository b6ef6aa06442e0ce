from django.apps import AppConfig
from django.conf import settings
from django.utils.module_loading import import_string


class FulfillmentConfig(AppConfig):
    """
    Builds the external collaborators once, from ``settings.FULFILLMENT``.

    Services take these as defaults; tests pass their own instances instead.
    """

    name = "fulfillment"
    verbose_name = "Outbound Fulfillment"
    default_auto_field = "django.db.models.BigAutoField"

    event_publisher = None
    carrier_adapter = None
    catalog_adapter = None

    def ready(self):
        conf = settings.FULFILLMENT
        self.event_publisher = import_string(conf["EVENT_PUBLISHER"])()
        self.carrier_adapter = import_string(conf["CARRIER_ADAPTER"])()
        self.catalog_adapter = import_string(conf["CATALOG_ADAPTER"])()
