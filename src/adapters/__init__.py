"""Adapters that satisfy the core ports.

Discord, Telegram and filesystem details live here so the relay engine in
core never imports platform code.
"""
