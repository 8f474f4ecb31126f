"""
iotedge-quickstart - automated IoT Edge quickstart validation
"""

__version__ = "1.0.0"

from .core import QuickstartOrchestrator
from .errors import QuickstartError

__all__ = ["QuickstartOrchestrator", "QuickstartError"]
