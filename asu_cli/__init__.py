"""
asu-cli: parallel OpenWrt firmware builds through the Attended SysUpgrade service.
"""

__version__ = "0.3.0"
