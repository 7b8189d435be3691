from typing import Annotated, Any, List, Literal, Optional

from pydantic import AnyUrl, BeforeValidator, HttpUrl, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


def parse_cors(v: Any) -> list[str] | str:
    if isinstance(v, str) and not v.startswith("["):
        return [i.strip() for i in v.split(",")]
    elif isinstance(v, list | str):
        return v
    raise ValueError(v)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "MedRoute"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    SENTRY_DSN: Optional[HttpUrl] = None

    FRONTEND_HOST: str = "http://localhost:5173"
    BACKEND_CORS_ORIGINS: Annotated[
        list[AnyUrl] | str, BeforeValidator(parse_cors)
    ] = []

    @computed_field  # type: ignore[prop-decorator]
    @property
    def all_cors_origins(self) -> list[str]:
        return [str(origin).rstrip("/") for origin in self.BACKEND_CORS_ORIGINS] + [
            self.FRONTEND_HOST
        ]

    # Router (OSRM). The first URL is the local instance, the others are public fallbacks.
    OSRM_BASE_URL: str = "http://localhost:5000"
    OSRM_FALLBACK_URLS: List[str] = ["https://router.project-osrm.org"]
    OSRM_TIMEOUT: float = 10.0
    OSRM_FALLBACK_TIMEOUT: float = 30.0

    # Solver (VROOM)
    VROOM_BASE_URL: str = "http://localhost:3000"
    VROOM_FALLBACK_URLS: List[str] = ["http://solver.vroom-project.org"]
    VROOM_TIMEOUT: float = 15.0
    VROOM_FALLBACK_TIMEOUT: float = 30.0

    PROVIDER_ATTEMPTS: int = 1
    PROVIDER_PROBE_TIMEOUT: float = 5.0

    # Nominatim-compatible geocoder, the built-in gazetteer is used when unset
    GEOCODER_URL: Optional[str] = None
    GEOCODER_TIMEOUT: float = 5.0

    FUEL_COST_PER_KM: float = 0.15
    FALLBACK_SPEED_KMH: float = 40.0


settings = Settings()  # type: ignore
