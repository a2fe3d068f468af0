"""API module"""

from .routes import calls, credentials, webhooks, health

__all__ = ["calls", "credentials", "webhooks", "health"]
