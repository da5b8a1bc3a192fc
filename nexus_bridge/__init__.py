"""Nexus Mods collection installer for Mod Organizer 2 instances."""

__version__ = "2.0.0"
