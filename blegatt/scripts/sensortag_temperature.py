"""Read the IR temperature sensor of a TI SensorTag.

The script finds the SensorTag by address, enables its temperature service
and prints the object and ambient temperatures once per interval.  If the
data characteristic supports notifications they are used, otherwise it is
polled.  Pass ``--emulated`` to run against an in-memory SensorTag instead of
a real radio.
"""

import sys
import logging
import argparse
import queue
from blegatt.emulation import EmulatedTransport, build_sensortag
from blegatt.emulation.sensortag import (TEMPERATURE_SERVICE, TEMPERATURE_DATA, TEMPERATURE_CONFIG,
                                         decode_temperature)
from blegatt.interface.errors import BluetoothError, NotConnectedError
from blegatt.manager import BluetoothManager


def configure_logging(verbose):
    """Configure logging verbosity according to -q and -v flags.

    Default behavior with no flags passed is to log critical messages only.
    Passing -q turns off all logging.  Passing one more -v flags increases
    the logging verbosity level.
    """

    if verbose is None:
        verbose = 0

    root = logging.getLogger()

    if verbose >= 0:
        handler = logging.StreamHandler()
        formatter = logging.Formatter('%(asctime)s.%(msecs)03d %(levelname).3s %(name)s %(message)s',
                                      '%y-%m-%d %H:%M:%S')
        handler.setFormatter(formatter)
        loglevels = [logging.CRITICAL, logging.ERROR, logging.WARNING, logging.INFO, logging.DEBUG]

        if verbose >= len(loglevels):
            verbose = len(loglevels) - 1

        level = loglevels[verbose]
        root.setLevel(level)
        root.addHandler(handler)
    else:
        root.addHandler(logging.NullHandler())


def parse_args(argv):
    """Parse command line arguments."""

    parser = argparse.ArgumentParser(description="Print the temperature measured by a TI SensorTag")

    parser.add_argument('-q', '--quiet', dest="verbose", action="store_const", const=-1, help="Turn off all logging output")
    parser.add_argument('-v', '--verbose', action="count", default=0, help="Increase logging level (goes error, warn, info, debug)")

    parser.add_argument('address', help="MAC address of the SensorTag")
    parser.add_argument('-t', '--timeout', type=float, default=10.0, help="Seconds to search for the device")
    parser.add_argument('-i', '--interval', type=float, default=1.0, help="Seconds between readings when polling and between link checks")
    parser.add_argument('-n', '--count', type=int, default=None, help="Stop after this many readings")
    parser.add_argument('--emulated', action="store_true", help="Use an emulated SensorTag instead of a radio")

    return parser.parse_args(argv)


def format_reading(value):
    obj, amb = decode_temperature(value)
    return "Temp raw = {%s} Temp: Object = %fC, Ambient = %fC" % (
        ",".join("%02x" % x for x in value), obj, amb)


def main(argv=None):
    """Script main entry point."""

    logger = logging.getLogger(__name__)

    if argv is None:
        argv = sys.argv[1:]

    args = parse_args(argv)
    configure_logging(args.verbose)

    transport = None
    if args.emulated:
        transport = EmulatedTransport([build_sensortag(args.address)])

    manager = BluetoothManager(transport)

    try:
        manager.start_discovery()

        try:
            sensor = manager.find(address=args.address, timeout=args.timeout)
        finally:
            manager.stop_discovery()

        print("Found device: Address = %s Name = %s" % (sensor.address, sensor.name))

        sensor.connect()

        try:
            sensor.find(TEMPERATURE_SERVICE)
            data = sensor.find(TEMPERATURE_DATA, TEMPERATURE_SERVICE)
            sensor.write(sensor.find(TEMPERATURE_CONFIG, TEMPERATURE_SERVICE), b'\x01')

            readings = queue.Queue()

            def _on_value(_char, value):
                readings.put(bytes(value))

            if data.can_subscribe('notify') or data.can_subscribe('indicate'):
                sensor.subscribe(data, _on_value)
                readings.put(sensor.read(data))
            else:
                sensor.poll(data, args.interval, _on_value)

            received = 0
            while args.count is None or received < args.count:
                if not sensor.connected:
                    raise NotConnectedError('read temperature', sensor.address)

                try:
                    value = readings.get(timeout=args.interval)
                except queue.Empty:
                    continue

                if len(value) < 4:
                    continue

                print(format_reading(value))
                received += 1
        finally:
            sensor.disconnect()
    except KeyboardInterrupt:
        pass
    except BluetoothError as err:
        print("Error: %s" % err.message)
        return 1
    except:
        logger.exception("Error running script.")
        return 1
    finally:
        manager.stop()

    return 0


if __name__ == '__main__':
    sys.exit(main())
