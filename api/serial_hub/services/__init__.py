# serial_hub/services/__init__.py
"""
Business logic services for Serial Hub.
"""
from serial_hub.services.serials import SerialAllocator
from serial_hub.services.aggregation import ContainerCoordinator
from serial_hub.services.delivery import ExternalDelivery
from serial_hub.services.labels import LabelService, StatusUpdater
from serial_hub.services.serial_client import SerialClient

__all__ = [
    "SerialAllocator",
    "ContainerCoordinator",
    "ExternalDelivery",
    "LabelService",
    "StatusUpdater",
    "SerialClient",
]
