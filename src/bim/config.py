from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional
import os
import sys

from bim.domain.money import to_decimal, to_money


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path
    uploads_dir: Path


def _windows_appdata() -> Path:
    return Path(os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming")))


def _mac_app_support() -> Path:
    return Path.home() / "Library" / "Application Support"


def get_app_paths(app_name: str = "BusinessInvoicingManager") -> AppPaths:
    override = os.environ.get("BIM_HOME", "").strip()
    if override:
        base = Path(override)
    elif sys.platform.startswith("win"):
        base = _windows_appdata() / app_name
    elif sys.platform == "darwin":
        base = _mac_app_support() / app_name
    else:
        base = Path.home() / f".{app_name.lower()}"

    logs = base / "logs"
    uploads = base / "uploads"
    db = base / "business.db"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)
    uploads.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs, uploads_dir=uploads)


@dataclass(frozen=True)
class PricingDefaults:
    vat_percent: Decimal = Decimal("19")
    stamp_duty: Decimal = Decimal("1.000")


@dataclass(frozen=True)
class IssuerInfo:
    name: str = "Votre Entreprise"
    email: str = "contact@entreprise.com"
    address: str = "Adresse de l'entreprise"
    bank_name: str = "Nom de la banque"
    iban: str = "TN59 XXXX XXXX XXXX XXXX XXXX"
    bic: str = "XXXXXXXX"


@dataclass(frozen=True)
class Settings:
    pricing: PricingDefaults = field(default_factory=PricingDefaults)
    issuer: IssuerInfo = field(default_factory=IssuerInfo)
    host: str = "127.0.0.1"
    port: int = 8000
    api_base_url: str = "http://127.0.0.1:8000"
    request_timeout: float = 10.0


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    env = os.environ if environ is None else environ

    def get(key: str) -> Optional[str]:
        value = env.get(key, "").strip()
        return value or None

    pricing = PricingDefaults()
    vat = get("BIM_VAT_PERCENT")
    stamp = get("BIM_STAMP_DUTY")
    pricing = PricingDefaults(
        vat_percent=to_decimal(vat, "BIM_VAT_PERCENT") if vat else pricing.vat_percent,
        stamp_duty=to_money(stamp, "BIM_STAMP_DUTY") if stamp else pricing.stamp_duty,
    )

    defaults = IssuerInfo()
    issuer = IssuerInfo(
        name=get("BIM_ISSUER_NAME") or defaults.name,
        email=get("BIM_ISSUER_EMAIL") or defaults.email,
        address=get("BIM_ISSUER_ADDRESS") or defaults.address,
        bank_name=get("BIM_BANK_NAME") or defaults.bank_name,
        iban=get("BIM_BANK_IBAN") or defaults.iban,
        bic=get("BIM_BANK_BIC") or defaults.bic,
    )

    host = get("BIM_HOST") or "127.0.0.1"
    port = int(get("BIM_PORT") or 8000)
    return Settings(
        pricing=pricing,
        issuer=issuer,
        host=host,
        port=port,
        api_base_url=get("BIM_API_URL") or f"http://{host}:{port}",
        request_timeout=float(get("BIM_REQUEST_TIMEOUT") or 10.0),
    )
