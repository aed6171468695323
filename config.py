import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel


class Settings(BaseModel):
    environment: str = "development"
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    store_name: str = "Saheli Store"
    currency_symbol: str = "₹"
    product_cache_ttl: float = 10.0
    cors_origins: List[str] = ["*"]
    log_level: str = "INFO"
    port: int = 8000
    receipt_font_dir: Optional[str] = None

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


def _split(value: Optional[str]) -> List[str]:
    if not value:
        return ["*"]
    return [v.strip() for v in value.split(",") if v.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings(
        environment=os.getenv("ENVIRONMENT", "development"),
        database_url=os.getenv("DATABASE_URL"),
        database_name=os.getenv("DATABASE_NAME"),
        store_name=os.getenv("STORE_NAME", "Saheli Store"),
        currency_symbol=os.getenv("CURRENCY_SYMBOL", "₹"),
        product_cache_ttl=float(os.getenv("PRODUCT_CACHE_TTL", 10)),
        cors_origins=_split(os.getenv("CORS_ORIGINS")),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        port=int(os.getenv("PORT", 8000)),
        receipt_font_dir=os.getenv("RECEIPT_FONT_DIR"),
    )
