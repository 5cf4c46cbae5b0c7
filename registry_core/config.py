import os
from typing import List

from pydantic import BaseModel


class Settings(BaseModel):
    # Upstream registry backend
    REGISTRY_API_URL: str = os.getenv("REGISTRY_API_URL", "http://localhost:5000/api")
    REGISTRY_HTTP_TIMEOUT: float = float(os.getenv("REGISTRY_HTTP_TIMEOUT", "10"))
    PARCEL_FETCH_LIMIT: int = int(os.getenv("PARCEL_FETCH_LIMIT", "1000"))

    # CORS
    ALLOW_ORIGINS: str = os.getenv("ALLOW_ORIGINS", "*")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    def allow_origins(self) -> List[str]:
        if not self.ALLOW_ORIGINS:
            return ["*"]
        return [o.strip() for o in self.ALLOW_ORIGINS.split(",") if o.strip()]


settings = Settings()
