"""
OAuth token persistence and the device authorization flow.
"""

from tempus.auth.device_flow import TokenManager
from tempus.auth.token import TokenStore

__all__ = ["TokenManager", "TokenStore"]
