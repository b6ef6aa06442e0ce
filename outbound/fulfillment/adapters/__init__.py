from .carrier_adapter import CarrierAdapterInterface, MockCarrierAdapter
from .catalog_adapter import CatalogAdapterInterface, MockCatalogAdapter
from .event_publisher import (
    EventPublisherInterface, InMemoryEventPublisher, LoggingEventPublisher, publish_after_commit
)

__all__ = [
    'CarrierAdapterInterface', 'MockCarrierAdapter',
    'CatalogAdapterInterface', 'MockCatalogAdapter',
    'EventPublisherInterface', 'InMemoryEventPublisher', 'LoggingEventPublisher',
    'publish_after_commit',
]
