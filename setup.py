from setuptools import setup, find_packages
import version

setup(
    name="ble-gatt-central",
    packages=find_packages(exclude=("test",)),
    version=version.version,
    license="LGPLv3",
    install_requires=[
        "typedargs>=1.0.0",
        "typing_extensions>=3.7"
    ],
    extras_require={
        'bleak': ["bleak>=0.20"],
        'test': ["pytest>=6.0"]
    },
    entry_points={
        'console_scripts': [
            'sensortag-temperature = blegatt.scripts.sensortag_temperature:main'
        ]
    },
    python_requires=">=3.8,<4",
    description="Bluetooth Low Energy GATT Central Engine",
    keywords=["bluetooth", "ble", "gatt", "central"],
    classifiers=[
        "Programming Language :: Python",
        "Development Status :: 4 - Beta",
        "License :: OSI Approved :: GNU Library or Lesser General Public License (LGPL)",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Software Development :: Libraries :: Python Modules"
        ],
    long_description="""\
BLE GATT Central Engine
-------------------------------

An asyncio based bluetooth low energy client that discovers peripherals,
manages their connections, caches their GATT tables and performs reads,
writes and notification delivery on top of a pluggable radio transport.
"""
)
