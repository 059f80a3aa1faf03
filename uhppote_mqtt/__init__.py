"""
uhppote-mqtt: Home Assistant MQTT bridge for UHPPOTE access controllers
"""

__version__ = "0.3.0"
