"""Classes for emulating a bluetooth radio and the peripherals around it."""

from .emulated_gatt import EmulatedAttribute, EmulatedGattTable
from .emulated_peripheral import EmulatedPeripheral, EmulatedPeripheralChannel
from .emulated_transport import EmulatedTransport, EmulatedTransportOptions
from .sensortag import build_sensortag

__all__ = ['EmulatedAttribute', 'EmulatedGattTable', 'EmulatedPeripheral', 'EmulatedPeripheralChannel',
           'EmulatedTransport', 'EmulatedTransportOptions', 'build_sensortag']
