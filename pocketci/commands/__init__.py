"""
CLI commands for pocketci.

Each module defines a click command or group that cli.py registers.
"""
