"""Ambient infrastructure shared by the engine: settings, logging and monitoring."""
