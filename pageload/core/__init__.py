"""
Core infrastructure package for the PageLoad diagnosis service.

Provides:
- Configuration management via pydantic-settings (config)
- FastAPI dependency injection utilities (dependencies)

Only configuration is re-exported here. Dependencies import the service layer,
so they are imported from their own module to keep package initialization
acyclic:

    from pageload.core import get_settings
    from pageload.core.dependencies import OrchestratorDep, ClientKeyDep
"""

from pageload.core.config import Settings, get_settings

__all__ = [
    'Settings',
    'get_settings',
]
