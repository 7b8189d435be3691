from fastapi import APIRouter

from medroute.api.routes import optimization

api_router = APIRouter()
api_router.include_router(optimization.router)


# Add health check endpoint
@api_router.get("/health")
def health_check():
    return {"status": "healthy", "service": "medroute"}


# Add version info
@api_router.get("/version")
def version_info():
    return {
        "version": "1.0.0",
        "api_version": "v1",
        "features": [
            "single_trip_assignment",
            "batch_optimization",
            "conflict_resolution",
            "return_trips",
            "provider_fallback",
        ],
    }
