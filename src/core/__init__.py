"""Core domain package for discord-bridge.

Core holds the cursor model, identifier ordering and the relay engine without
any Discord, Telegram or filesystem-specific code, keeping the relay logic
portable across adapters.
"""
