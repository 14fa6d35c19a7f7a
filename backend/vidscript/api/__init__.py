"""API routes for the video-to-script pipeline."""

from vidscript.api import pool_routes, routes, script_routes

__all__ = ["routes", "script_routes", "pool_routes"]
