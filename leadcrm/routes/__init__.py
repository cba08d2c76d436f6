"""
API route handlers organized by domain.
"""

from leadcrm.routes.broadcasting import router as broadcasting_router
from leadcrm.routes.health import router as health_router
from leadcrm.routes.leads import admin_router as admin_leads_router
from leadcrm.routes.leads import provider_router as provider_leads_router
from leadcrm.routes.leads import router as leads_router
from leadcrm.routes.notifications import admin_router as admin_notifications_router
from leadcrm.routes.notifications import provider_router as provider_notifications_router
from leadcrm.routes.providers import router as providers_router
from leadcrm.routes.realtime import router as realtime_router
from leadcrm.routes.settings import router as settings_router

__all__ = [
    "admin_leads_router",
    "admin_notifications_router",
    "broadcasting_router",
    "health_router",
    "leads_router",
    "provider_leads_router",
    "provider_notifications_router",
    "providers_router",
    "realtime_router",
    "settings_router",
]
