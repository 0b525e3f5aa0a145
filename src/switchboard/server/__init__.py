"""Switchboard relay server."""
