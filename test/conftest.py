import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


def build_store(tmp_path: Path, name: str = "business.db"):
    """Fresh container with one customer, product A (100.000, stock 5) and service B (30.000)."""
    from bim.application.container import build_container
    from bim.config import Settings

    container = build_container(tmp_path / name, settings=Settings(), uploads_dir=tmp_path / "uploads")
    customer = container.customers.add_customer(
        name="Société Test",
        category="entreprise",
        email="contact@test.tn",
        phone="+216 71 000 000",
        address="Rue de Tunis, Tunis",
        fiscal_number="1234567/A/M/000",
    )
    product = container.catalog.add_product("Produit A", "Panneau", Decimal("100.000"), 5)
    service = container.catalog.add_service("Service B", "Installation", Decimal("30.000"))
    return container, customer, product, service
