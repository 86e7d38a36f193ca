"""
Health check utilities for the MediRate API
"""

import logging
from typing import Any, Callable, Dict, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from .config.loader import get_config
from .database import SessionLocal
from .models import utcnow

logger = logging.getLogger(__name__)


class HealthChecker:
    """Health check coordinator"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, config_loader=get_config):
        self.session_factory = session_factory
        self.config_loader = config_loader
        self.checks = {
            "database": self.check_database,
            "configuration": self.check_configuration,
        }

    async def check_all(self) -> Dict[str, Any]:
        """Run all health checks"""
        results = {
            "status": "healthy",
            "timestamp": utcnow().isoformat(),
            "checks": {},
        }

        all_healthy = True

        for check_name, check_func in self.checks.items():
            try:
                check_result = await check_func()
                results["checks"][check_name] = check_result

                if not check_result.get("healthy", False):
                    all_healthy = False

            except Exception as e:
                logger.error(f"Health check '{check_name}' failed: {e}")
                results["checks"][check_name] = {
                    "healthy": False,
                    "error": str(e),
                }
                all_healthy = False

        results["status"] = "healthy" if all_healthy else "unhealthy"
        return results

    async def check_database(self) -> Dict[str, Any]:
        """Check PostgreSQL database connectivity"""
        db: Optional[Session] = None
        try:
            db = self.session_factory()
            result = db.execute(text("SELECT 1")).scalar()

            return {
                "healthy": result == 1,
                "message": "Database connection successful",
            }

        except Exception as e:
            return {
                "healthy": False,
                "error": str(e),
            }
        finally:
            if db is not None:
                db.close()

    async def check_configuration(self) -> Dict[str, Any]:
        """Check that the external service credentials are present"""
        config = self.config_loader()
        missing = [
            name
            for name, value in (
                ("stripe.secret_key", config.stripe.secret_key),
                ("stripe.webhook_secret", config.stripe.webhook_secret),
                ("brevo.api_key", config.brevo.api_key),
                ("blob.token", config.blob.token),
            )
            if not value
        ]
        if missing:
            return {"healthy": False, "error": f"Missing settings: {', '.join(missing)}"}
        return {"healthy": True, "message": "External service credentials configured"}
