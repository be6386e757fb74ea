"""Transports that connect the GATT engine to real bluetooth radios.

Transports are imported explicitly so that their third party dependencies are
only required when they are used, for example::

    from blegatt.transports.bleak_transport import BleakTransport
"""
