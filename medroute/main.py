import logging

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.routing import APIRoute
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from medroute.api.main import api_router
from medroute.core.config import settings

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)


def custom_generate_unique_id(route: APIRoute) -> str:
    return f"{route.tags[0]}-{route.name}" if route.tags else route.name


def format_validation_error(error: ValidationError | RequestValidationError) -> dict:
    """Format Pydantic validation errors into user-friendly French messages"""
    errors = []

    field_names = {
        "patient": "Patient",
        "pickup": "Adresse de prise en charge",
        "destination": "Destination",
        "appointment_time": "Heure de rendez-vous",
        "return_time": "Heure de retour",
        "earliest_pickup_time": "Heure de reprise au plus tôt",
        "duration": "Durée du rendez-vous",
        "vehicle_type_required": "Type de véhicule requis",
        "priority": "Priorité",
        "type": "Type de véhicule",
        "status": "Statut du véhicule",
        "pickup_coordinates": "Coordonnées de prise en charge",
        "destination_coordinates": "Coordonnées de destination",
    }

    for err in error.errors():
        loc = err.get("loc", [""])
        field = loc[-1] if loc else ""
        field_display = field_names.get(field, field)
        error_type = err.get("type", "")

        if "value_error" in error_type and "time" in str(field):
            msg = f"{field_display}: Format invalide, utilisez HH:MM"
        elif "string_too_long" in error_type:
            msg = f"{field_display}: Trop long (maximum {err.get('ctx', {}).get('max_length', '')} caractères)"
        elif "greater_than_equal" in error_type:
            msg = f"{field_display}: Doit être positif"
        elif "missing" in error_type:
            msg = f"{field_display}: Champ obligatoire"
        elif "enum" in error_type:
            msg = f"{field_display}: Valeur non valide"
        else:
            msg = err.get("msg", f"{field_display}: Erreur de validation")

        errors.append(msg)

    return {
        "detail": " | ".join(errors) if errors else "Erreur de validation des données",
        "errors": errors,
    }


if settings.SENTRY_DSN and settings.ENVIRONMENT != "local":
    sentry_sdk.init(dsn=str(settings.SENTRY_DSN), enable_tracing=True)

app = FastAPI(
    title=settings.PROJECT_NAME,
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    generate_unique_id_function=custom_generate_unique_id,
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle validation errors with user-friendly messages"""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=format_validation_error(exc),
    )

# Set all CORS enabled origins
if settings.all_cors_origins:
    allow_origins = settings.all_cors_origins
    allow_credentials = True

    if settings.ENVIRONMENT == "local":
        allow_origins = ["*"]
        allow_credentials = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.include_router(api_router, prefix=settings.API_V1_STR)
