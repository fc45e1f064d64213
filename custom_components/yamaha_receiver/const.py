"""Constants for the Yamaha receiver integration."""

from datetime import timedelta

DOMAIN = "yamaha_receiver"

DEFAULT_DEVICE_ID = "default"
DEFAULT_REFRESH_INTERVAL_MS = 60000
DEFAULT_REFRESH_INTERVAL = timedelta(milliseconds=DEFAULT_REFRESH_INTERVAL_MS)
DEFAULT_REQUEST_TIMEOUT = 5.0

CONF_HOST = "host"
CONF_REFRESH = "refresh"
CONF_TIMEOUT = "timeout"
CONF_DEVICE_ID = "uid"
CONF_BINDING_TYPE = "bindingType"

VOLUME_DB_MIN = -80.0
VOLUME_DB_MAX = 16.0
VOLUME_STEP_DB = 0.5
