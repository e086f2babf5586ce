#!/usr/bin/env -S python3 -B -u
"""
ipban - Linux firewall reconciliation engine

Drives ipset address sets and iptables INPUT rules into the state
requested by a host-based intrusion prevention service.
"""

__version__ = '1.0.0'
__author__ = 'IPBan Contributors'
__license__ = 'MIT'

# Package metadata
__all__ = [
    'core',
    'executors',
    'firewall',
    'scripts',
]
