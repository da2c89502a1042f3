from . import admin_tenants, admin_tickets, auth, health, support_tickets

__all__ = [
    "admin_tenants",
    "admin_tickets",
    "auth",
    "health",
    "support_tickets",
]
