from __future__ import annotations

from bim.domain.errors import NotFoundError, ValidationError
from bim.domain.models import Product, Service
from bim.domain.money import to_money


class CatalogService:
    def __init__(self, repo):
        self.repo = repo

    def list_products(self) -> list[Product]:
        return self.repo.list_products()

    def get_product(self, product_id: int) -> Product:
        p = self.repo.get_product_by_id(int(product_id))
        if not p:
            raise NotFoundError("Product not found.")
        return p

    def add_product(self, name: str, description: str, price, stock: int) -> Product:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        price = to_money(price, "Price")
        if price < 0:
            raise ValidationError("Price must be >= 0.")
        if int(stock) < 0:
            raise ValidationError("Stock must be >= 0.")
        pid = self.repo.add_product(name, (description or "").strip(), price, int(stock))
        return self.get_product(pid)

    def list_services(self) -> list[Service]:
        return self.repo.list_services()

    def get_service(self, service_id: int) -> Service:
        s = self.repo.get_service_by_id(int(service_id))
        if not s:
            raise NotFoundError("Service not found.")
        return s

    def add_service(self, name: str, description: str, price) -> Service:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.")
        price = to_money(price, "Price")
        if price < 0:
            raise ValidationError("Price must be >= 0.")
        sid = self.repo.add_service(name, (description or "").strip(), price)
        return self.get_service(sid)
