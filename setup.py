"""
Setup script for Network Scanner.

Usage:
    pip install .
    pip install -e ".[test]"

Installs the ``network-scanner`` command.
"""
from setuptools import setup

setup(
    name='network-scanner',
    version='1.0.0',
    description='LAN device discovery combining subnet probing and DNS-SD',
    python_requires='>=3.8',
    packages=[
        'config',
        'discovery',
        'app',
    ],
    py_modules=['network_scanner'],
    package_data={
        'discovery': ['data/oui.csv'],
    },
    install_requires=[
        'psutil>=5.9',
        'zeroconf>=0.100',
    ],
    extras_require={
        'test': [
            'pytest>=7.0',
            'hypothesis>=6.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'network-scanner=network_scanner:main',
        ],
    },
)
