"""snitch — detect when monitored samples get burned on threat-intel platforms."""

__version__ = "0.1.0"
