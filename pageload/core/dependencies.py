"""
FastAPI dependency injection module for the PageLoad diagnosis service.

This module provides reusable FastAPI dependencies for configuration access,
the process-wide orchestrator, and the caller's rate-limit identity. Endpoint
handlers never reach for module-level state; everything they use is injected,
which keeps them testable with app.dependency_overrides.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_orchestrator: Returns the PageLoadOrchestrator built by the app lifespan
- get_client_key: Derives the rate-limit key from forwarded-address headers
- SettingsDep / OrchestratorDep / ClientKeyDep: Annotated aliases

Usage Examples:
    @router.get("/api/pageload")
    async def pageload(
        orchestrator: OrchestratorDep,
        client_key: ClientKeyDep,
    ):
        ...

    # In tests
    app.dependency_overrides[get_orchestrator] = lambda: test_orchestrator
"""

from typing import Annotated

from fastapi import Depends, Request

from pageload.core.config import Settings, get_settings
from pageload.services.orchestrator import PageLoadOrchestrator
from pageload.services.rate_limit import client_key_from_headers


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() to enable FastAPI's
    dependency override mechanism for testing:

        app.dependency_overrides[get_settings_dependency] = lambda: test_settings
    """
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Orchestrator Dependency
# =============================================================================

def get_orchestrator(request: Request) -> PageLoadOrchestrator:
    """
    Return the orchestrator created during application startup.

    Raises:
        RuntimeError: If called outside a running lifespan (app not started).
    """
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise RuntimeError("PageLoad orchestrator is not initialized; is the app lifespan running?")
    return orchestrator


# =============================================================================
# Client Identity Dependency
# =============================================================================

def get_client_key(
    request: Request,
    settings: SettingsDep,
) -> str:
    """
    Derive the caller's rate-limit key from forwarded-address headers.

    Falls back to the shared "unknown" bucket. The socket peer address is
    never used.
    """
    return client_key_from_headers(request.headers, settings.client_ip_headers)


# =============================================================================
# Type Aliases for Dependency Injection
# =============================================================================

OrchestratorDep = Annotated[PageLoadOrchestrator, Depends(get_orchestrator)]

ClientKeyDep = Annotated[str, Depends(get_client_key)]
