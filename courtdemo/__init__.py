"""Courtroom roleplay toolkit: packets, chat logs, timers, animation playback and a demo server."""

__version__ = "2.11.0"