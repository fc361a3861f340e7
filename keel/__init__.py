"""
keel - Turn source-control events into jobs

Reads per-repository build configuration and job templates at the revision
an event refers to, compiles them into job specs, and submits those to an
executor. Job status and logs are kept in pluggable stores.
"""

__version__ = "0.1.0"
__author__ = "keel developers"


__all__ = ["Service", "KeelConfig", "load_config", "get_keel_home"]

from .config import KeelConfig, load_config, get_keel_home
from .service import Service
