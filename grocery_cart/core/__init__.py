# Core modules

from .config import Settings, PricingConfig, get_settings
from .session import SessionManager, UserSession

__all__ = ["Settings", "PricingConfig", "get_settings", "SessionManager", "UserSession"]
