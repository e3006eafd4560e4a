"""
  File with all constants in project
"""


class UpdateAction:
    """Update actions carried by every bridge/device change event"""
    ADDED = "ADDED"
    CHANGED = "CHANGED"
    REMOVED = "REMOVED"


class DeviceType:
    """Device kinds a bridge may expose"""
    LIGHT = "LIGHT"
    SWITCH = "SWITCH"
    OUTLET = "OUTLET"
    SENSOR = "SENSOR"
    AV_RECEIVER = "AV_RECEIVER"


# SSDP discovery
SSDP_MULTICAST_ADDR = "239.255.255.250"
SSDP_PORT = 1900
SSDP_MULTICAST_TTL = 2
BRIDGE_TYPE_HEADER = "falnet_nerves:bridge"
NANOLEAF_TYPE_HEADER = "nanoleaf_aurora:light"
SSDP_ALL = "ssdp:all"
SSDP_MAX_AGE = 1800
SSDP_SERVER_HEADER = "Falnet NDP/0.1"
ADVERTISE_INTERVAL = 10.0
USN_PREFIX = "uuid:"
LOCATION_SCHEME = "grpc://"
# Broadcast
SINK_BUFFER_SIZE = 10
# RPC
DEFAULT_RPC_PORT = 10101
DEFAULT_RPC_TIMEOUT = 5.0
DEFAULT_DRIVER_TIMEOUT = 5.0
# Configuration file paths
HUB_CONFIG_PATH = "/etc/falnet-nerves-hub.conf"
BRIDGE_CONFIG_PATH = "/etc/falnet-nerves-bridge.conf"
# Logging
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
