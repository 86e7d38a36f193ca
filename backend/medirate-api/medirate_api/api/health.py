"""Liveness, readiness and dependency health for load balancers."""
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..config.loader import Config, get_config
from ..health import HealthChecker

SERVICE_NAME = "medirate-api"

router = APIRouter(tags=["health"])


def get_health_checker(config: Config = Depends(get_config)) -> HealthChecker:
    return HealthChecker(config_loader=lambda: config)


@router.get("/health")
async def health_check(
    checker: HealthChecker = Depends(get_health_checker),
    config: Config = Depends(get_config),
):
    """Database and credential checks, plus the deployed version."""
    report = await checker.check_all()
    report["version"] = config.global_config.version
    return report


@router.get("/health/live")
async def liveness_check():
    return {"status": "alive", "service": SERVICE_NAME}


@router.get("/health/ready")
async def readiness_check(checker: HealthChecker = Depends(get_health_checker)):
    """503 until the database answers and the Stripe/Blob/Brevo credentials are set."""
    report = await checker.check_all()
    if report["status"] != "healthy":
        return JSONResponse(content=report, status_code=503)
    return {"status": "ready", "service": SERVICE_NAME, "checks": report["checks"]}
