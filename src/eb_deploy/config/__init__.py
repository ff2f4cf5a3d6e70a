"""
Configuration management for eb-deploy.

Contains the Pydantic settings that supply defaults for every deployment
input, read from environment variables and .env files.
"""
from eb_deploy.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings"]
