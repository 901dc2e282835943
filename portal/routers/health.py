from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Response

from .. import schemas
from ..auth import require_admin
from ..db import ClusterPools, get_cluster

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/database", response_model=schemas.ClusterHealth)
def database_health(response: Response, cluster: ClusterPools = Depends(get_cluster)):
    """Probe both pools; one unhealthy pool never hides the other's result."""
    results = cluster.check_health()
    up = [r["healthy"] for r in results.values()]
    if all(up):
        status = "healthy"
    elif any(up):
        status = "degraded"
    else:
        status = "unhealthy"
        response.status_code = 503
    return {"status": status, "timestamp": datetime.now(timezone.utc), **results}


@router.get(
    "/connections",
    response_model=schemas.ConnectionStats,
    dependencies=[Depends(require_admin)],
)
def connection_stats(cluster: ClusterPools = Depends(get_cluster)):
    return cluster.connection_stats()
