"""
app/api/routers package marker.
"""

from app.api.routers.alerts_router import router as alerts_router
from app.api.routers.kpi_router import router as kpi_router
from app.api.routers.rainfall_router import router as rainfall_router
from app.api.routers.reports_router import router as reports_router

__all__ = [
    "alerts_router",
    "kpi_router",
    "rainfall_router",
    "reports_router",
]
