"""
LAN Discovery Module

A Python module for discovering devices on the local network using a
subnet sweep, multicast DNS service discovery and SSDP.
"""

__version__ = "1.0.0"
__author__ = "LAN Discovery Team"
