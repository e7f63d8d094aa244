"""
Infrastructure Configuration - Unified Configuration System
==========================================================
Single source of truth for all application configuration.

- AppSettings is the single source of truth
- Settings are created once in the app factory and passed down explicitly
"""

from .settings import AppSettings, HubSettings, ProbeSettings, RegistrySettings

__all__ = ['AppSettings', 'HubSettings', 'ProbeSettings', 'RegistrySettings']
