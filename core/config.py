"""Source sync configuration.

Settings are read once from the environment (and a `.env` file at the repo
root, when present) and then passed explicitly to the components that need
them.

Usage:
    from core.config import SourceSettings

    settings = SourceSettings.from_env()
    client = create_source_client(settings)
"""

import os
from pathlib import Path
from typing import List, Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

env_path = Path(__file__).resolve().parents[1] / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "sync.db"

DEFAULT_TIPOMOV_FIELDS = "TIPMOV,TIPOMOV,tipmov,tipomov,tipo_mov,codmov,cod_tipomov"
DEFAULT_BRAND_FIELDS = "MARCA,nommar,nommarca,marca,brand,codmar"
DEFAULT_CLASS_FIELDS = "CLASE,clase,codclase,class,codcla"
DEFAULT_DISCOUNT_FIELDS = "VALDES,valdes,descuento,discount,vrdes,valordes"
DEFAULT_CITY_FIELDS = (
    "cli_nomciu,cli_ciudad,nomciu,nomciudad,ciudad,municipio,departamento,"
    "nom_departamento,region,ciudade,ciudaddestino,ciudad_destino,destino,"
    "codciudad,nombre_ciudad,NOMSEC,nomsec"
)
DEFAULT_DOCUMENT_TOTAL_FIELDS = "totalfactura,total_documento,vrtotal_doc,total_doc"


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


def _as_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() not in ("false", "0", "no", "off")


def _as_int(value: Optional[str], default: int) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default


class SourceSettings(BaseModel):
    """Configuration for the Source API clients and the sync engine."""

    # Client selection
    provider: str = Field(default="", description="SOURCE_API_PROVIDER (fomplus, http, ...)")
    api_url: Optional[str] = Field(default=None, description="Base URL of the generic REST source")
    api_token: str = ""

    # Fomplus ERP endpoints
    cartera_base_url: str = "https://cartera.fomplus.com"
    ventas_base_url: str = "https://gspapiest.fomplus.com"
    database: str = ""
    vendor: str = ""
    timeout_seconds: float = 90.0

    # Sales feed shape
    ventas_chunk_days: int = 7
    ventas_range_concurrency: int = 2
    tipomov_resta_codes: List[str] = Field(default_factory=lambda: ["04", "06", "15"])
    tipomov_fields: List[str] = Field(default_factory=lambda: _split(DEFAULT_TIPOMOV_FIELDS))
    brand_fields: List[str] = Field(default_factory=lambda: _split(DEFAULT_BRAND_FIELDS))
    class_fields: List[str] = Field(default_factory=lambda: _split(DEFAULT_CLASS_FIELDS))
    discount_fields: List[str] = Field(default_factory=lambda: _split(DEFAULT_DISCOUNT_FIELDS))
    city_fields: List[str] = Field(default_factory=lambda: _split(DEFAULT_CITY_FIELDS))
    document_total_fields: List[str] = Field(
        default_factory=lambda: _split(DEFAULT_DOCUMENT_TOTAL_FIELDS)
    )

    # Sync behavior
    sync_by_customer: bool = True
    sync_enabled: bool = True
    scheduler_interval_minutes: int = 15
    backfill_days: int = 0
    customer_page_size: int = 1000
    inventory_maps_ttl_seconds: float = 60.0

    db_path: Path = DEFAULT_DB_PATH

    @property
    def is_fomplus(self) -> bool:
        return self.provider.strip().lower() == "fomplus"

    @property
    def has_external_source(self) -> bool:
        """True when a real Source API is configured (not the mock)."""
        return self.is_fomplus or bool(self.api_url)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "SourceSettings":
        """Build settings from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ)
        """
        env = os.environ if environ is None else environ
        token = env.get("SOURCE_API_TOKEN", "")
        concurrency = _as_int(env.get("SOURCE_VENTAS_RANGE_CONCURRENCY"), 2)
        chunk_days = _as_int(env.get("SOURCE_VENTAS_CHUNK_DAYS"), 7)

        return cls(
            provider=env.get("SOURCE_API_PROVIDER", ""),
            api_url=env.get("SOURCE_API_URL") or None,
            api_token=token,
            cartera_base_url=env.get("SOURCE_API_CXC_BASE_URL", "https://cartera.fomplus.com"),
            ventas_base_url=env.get("SOURCE_API_VENTAS_BASE_URL", "https://gspapiest.fomplus.com"),
            database=env.get("SOURCE_API_DB", ""),
            vendor=env.get("SOURCE_API_VENDOR", ""),
            timeout_seconds=_as_int(env.get("SOURCE_API_TIMEOUT_MS"), 90000) / 1000,
            ventas_chunk_days=chunk_days if chunk_days > 0 else 7,
            ventas_range_concurrency=min(3, max(1, concurrency)),
            tipomov_resta_codes=_split(env.get("SOURCE_VENTAS_TIPOMOV_RESTA", "04,06,15")),
            tipomov_fields=_split(env.get("SOURCE_VENTAS_TIPOMOV_FIELDS", DEFAULT_TIPOMOV_FIELDS)),
            brand_fields=_split(env.get("SOURCE_VENTAS_BRAND_FIELDS", DEFAULT_BRAND_FIELDS)),
            class_fields=_split(env.get("SOURCE_VENTAS_CLASS_FIELDS", DEFAULT_CLASS_FIELDS)),
            discount_fields=_split(
                env.get("SOURCE_VENTAS_DISCOUNT_FIELDS", DEFAULT_DISCOUNT_FIELDS)
            ),
            city_fields=_split(env.get("SOURCE_VENTAS_CITY_FIELDS", DEFAULT_CITY_FIELDS)),
            document_total_fields=_split(
                env.get("SOURCE_VENTAS_DOCUMENT_TOTAL_FIELDS", DEFAULT_DOCUMENT_TOTAL_FIELDS)
            ),
            sync_by_customer=_as_bool(env.get("SOURCE_SYNC_BY_CUSTOMER"), True),
            sync_enabled=_as_bool(env.get("SOURCE_SYNC_ENABLED"), True),
            scheduler_interval_minutes=max(1, _as_int(env.get("SOURCE_SYNC_INTERVAL_MINUTES"), 15)),
            backfill_days=max(0, _as_int(env.get("SOURCE_SYNC_BACKFILL_DAYS"), 0)),
            customer_page_size=max(1, _as_int(env.get("SOURCE_CUSTOMER_PAGE_SIZE"), 1000)),
            inventory_maps_ttl_seconds=float(
                _as_int(env.get("INVENTORY_MAPS_CACHE_TTL_SECONDS"), 60)
            ),
            db_path=Path(env.get("SYNC_DB_PATH") or DEFAULT_DB_PATH),
        )
