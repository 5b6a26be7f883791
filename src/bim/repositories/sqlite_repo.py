from __future__ import annotations

import sqlite3
import shutil
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Iterable, Optional

from bim.domain.errors import InsufficientStockError, NotFoundError, ValidationError
from bim.domain.models import (
    CUSTOMER_CATEGORIES,
    PAYMENT_TYPES,
    Customer,
    DocumentHeader,
    DocumentItem,
    DocumentKind,
    Employee,
    Expense,
    LedgerEntry,
    LineItem,
    PricingParams,
    Product,
    ProductLine,
    Service,
    Supplier,
    Totals,
)
from bim.domain.money import from_millimes, to_millimes

_DOCUMENT_COLUMNS = """
    id, kind, customer_id, date, status, payment_type,
    vat_enabled, vat_percent, discount_percent, stamp_duty_millimes,
    subtotal_millimes, discount_millimes, vat_millimes, total_millimes,
    validity_days, idempotency_key, created_at
"""


def _sql_list(values: Iterable[str]) -> str:
    return ",".join(f"'{v}'" for v in values)


class SqliteRepository:
    def __init__(self, db_path: Path | str, busy_timeout: float = 30.0):
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_ledger_and_idempotency),
                (3, self._migration_v3_records),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
            conn.commit()
        except Exception as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise RuntimeError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            f"""
        CREATE TABLE IF NOT EXISTS customers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            category TEXT NOT NULL CHECK(category IN ({_sql_list(CUSTOMER_CATEGORIES)})),
            email TEXT NOT NULL,
            phone TEXT NOT NULL,
            address TEXT NOT NULL,
            fiscal_number TEXT
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS customer_documents (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_id INTEGER NOT NULL,
            path TEXT NOT NULL,
            FOREIGN KEY(customer_id) REFERENCES customers(id) ON DELETE CASCADE
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS products (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            price_millimes INTEGER NOT NULL CHECK(price_millimes >= 0),
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS services (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            description TEXT NOT NULL DEFAULT '',
            price_millimes INTEGER NOT NULL CHECK(price_millimes >= 0)
        )
        """
        )

        cur.execute(
            f"""
        CREATE TABLE IF NOT EXISTS documents (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            kind TEXT NOT NULL CHECK(kind IN ({_sql_list(k.value for k in DocumentKind)})),
            customer_id INTEGER NOT NULL,
            date TEXT NOT NULL,
            status TEXT NOT NULL,
            payment_type TEXT CHECK(payment_type IS NULL OR payment_type IN ({_sql_list(PAYMENT_TYPES)})),
            vat_enabled INTEGER NOT NULL DEFAULT 1 CHECK(vat_enabled IN (0,1)),
            vat_percent TEXT NOT NULL,
            discount_percent TEXT NOT NULL,
            stamp_duty_millimes INTEGER NOT NULL CHECK(stamp_duty_millimes >= 0),
            subtotal_millimes INTEGER NOT NULL,
            discount_millimes INTEGER NOT NULL,
            vat_millimes INTEGER NOT NULL,
            total_millimes INTEGER NOT NULL,
            validity_days INTEGER,
            created_at TEXT NOT NULL,
            FOREIGN KEY(customer_id) REFERENCES customers(id)
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS document_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            document_id INTEGER NOT NULL,
            product_id INTEGER,
            service_id INTEGER,
            name TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            unit_price_millimes INTEGER NOT NULL CHECK(unit_price_millimes >= 0),
            CHECK((product_id IS NULL) <> (service_id IS NULL)),
            FOREIGN KEY(document_id) REFERENCES documents(id) ON DELETE CASCADE,
            FOREIGN KEY(product_id) REFERENCES products(id),
            FOREIGN KEY(service_id) REFERENCES services(id),
            UNIQUE(document_id, product_id),
            UNIQUE(document_id, service_id)
        )
        """
        )

    def _migration_v2_ledger_and_idempotency(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS stock_ledger (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                datetime TEXT NOT NULL,
                product_id INTEGER NOT NULL,
                qty_delta INTEGER NOT NULL,
                stock_after INTEGER NOT NULL CHECK(stock_after >= 0),
                document_id INTEGER NOT NULL,
                notes TEXT,
                FOREIGN KEY(product_id) REFERENCES products(id),
                FOREIGN KEY(document_id) REFERENCES documents(id)
            )
            """
        )

        self._add_column_if_missing(cur, "documents", "idempotency_key", "TEXT")
        cur.execute(
            """
            CREATE UNIQUE INDEX IF NOT EXISTS ux_documents_idempotency_key
            ON documents(idempotency_key) WHERE idempotency_key IS NOT NULL
            """
        )

    def _migration_v3_records(self, cur: sqlite3.Cursor) -> None:
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS suppliers (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                email TEXT NOT NULL,
                phone TEXT NOT NULL,
                address TEXT NOT NULL,
                fiscal_number TEXT
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS personnel (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                position TEXT NOT NULL,
                email TEXT NOT NULL,
                phone TEXT NOT NULL,
                salary_millimes INTEGER NOT NULL CHECK(salary_millimes >= 0),
                hire_date TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS expenses (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                description TEXT NOT NULL,
                amount_millimes INTEGER NOT NULL CHECK(amount_millimes >= 0),
                date TEXT NOT NULL,
                category TEXT NOT NULL,
                attachment TEXT
            )
            """
        )

    def _add_column_if_missing(self, cur: sqlite3.Cursor, table: str, column: str, definition: str) -> None:
        cur.execute(f"PRAGMA table_info({table})")
        cols = {str(r[1]) for r in cur.fetchall()}
        if column in cols:
            return
        cur.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")

    # ---------- Customers ----------
    def add_customer(
        self,
        name: str,
        category: str,
        email: str,
        phone: str,
        address: str,
        fiscal_number: Optional[str],
    ) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO customers (name, category, email, phone, address, fiscal_number)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, category, email, phone, address, fiscal_number),
        )
        cid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return cid

    def add_customer_document(self, customer_id: int, path: str) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO customer_documents (customer_id, path) VALUES (?, ?)",
            (int(customer_id), path),
        )
        conn.commit()
        conn.close()

    def _customer_documents(self, cur: sqlite3.Cursor, customer_id: int) -> tuple[str, ...]:
        cur.execute("SELECT path FROM customer_documents WHERE customer_id=? ORDER BY id", (int(customer_id),))
        return tuple(str(r[0]) for r in cur.fetchall())

    def _row_to_customer(self, cur: sqlite3.Cursor, r) -> Customer:
        return Customer(
            id=int(r[0]),
            name=str(r[1]),
            category=str(r[2]),
            email=str(r[3]),
            phone=str(r[4]),
            address=str(r[5]),
            fiscal_number=(str(r[6]) if r[6] is not None else None),
            documents=self._customer_documents(cur, int(r[0])),
        )

    def list_customers(self) -> list[Customer]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, category, email, phone, address, fiscal_number FROM customers ORDER BY name")
        rows = cur.fetchall()
        customers = [self._row_to_customer(cur, r) for r in rows]
        conn.close()
        return customers

    def get_customer_by_id(self, customer_id: int) -> Optional[Customer]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT id, name, category, email, phone, address, fiscal_number FROM customers WHERE id=?",
            (int(customer_id),),
        )
        r = cur.fetchone()
        customer = self._row_to_customer(cur, r) if r else None
        conn.close()
        return customer

    # ---------- Catalog ----------
    def add_product(self, name: str, description: str, price: Decimal, stock: int) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO products (name, description, price_millimes, stock)
            VALUES (?, ?, ?, ?)
        """,
            (name, description, to_millimes(price), int(stock)),
        )
        pid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return pid

    def list_products(self) -> list[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, description, price_millimes, stock FROM products ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [
            Product(id=int(r[0]), name=str(r[1]), description=str(r[2]), price=from_millimes(r[3]), stock=int(r[4]))
            for r in rows
        ]

    def get_product_by_id(self, product_id: int) -> Optional[Product]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "SELECT id, name, description, price_millimes, stock FROM products WHERE id=?",
            (int(product_id),),
        )
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return Product(id=int(r[0]), name=str(r[1]), description=str(r[2]), price=from_millimes(r[3]), stock=int(r[4]))

    def add_service(self, name: str, description: str, price: Decimal) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO services (name, description, price_millimes) VALUES (?, ?, ?)",
            (name, description, to_millimes(price)),
        )
        sid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return sid

    def list_services(self) -> list[Service]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, description, price_millimes FROM services ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [Service(id=int(r[0]), name=str(r[1]), description=str(r[2]), price=from_millimes(r[3])) for r in rows]

    def get_service_by_id(self, service_id: int) -> Optional[Service]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, description, price_millimes FROM services WHERE id=?", (int(service_id),))
        r = cur.fetchone()
        conn.close()
        if not r:
            return None
        return Service(id=int(r[0]), name=str(r[1]), description=str(r[2]), price=from_millimes(r[3]))

    def recent_ledger(self, product_id: Optional[int] = None, limit: int = 100) -> list[LedgerEntry]:
        conn = self._conn()
        cur = conn.cursor()
        if product_id is None:
            cur.execute(
                """
                SELECT id, datetime, product_id, qty_delta, stock_after, document_id, notes
                FROM stock_ledger
                ORDER BY id DESC
                LIMIT ?
                """,
                (int(limit),),
            )
        else:
            cur.execute(
                """
                SELECT id, datetime, product_id, qty_delta, stock_after, document_id, notes
                FROM stock_ledger
                WHERE product_id = ?
                ORDER BY id DESC
                LIMIT ?
                """,
                (int(product_id), int(limit)),
            )
        rows = cur.fetchall()
        conn.close()
        return [LedgerEntry(*r) for r in rows]

    # ---------- Documents ----------
    def create_document_with_items(
        self,
        kind: DocumentKind,
        customer_id: int,
        date_iso: str,
        status: str,
        payment_type: Optional[str],
        pricing: PricingParams,
        totals: Totals,
        validity_days: Optional[int],
        lines: Iterable[LineItem],
        created_at: str,
        idempotency_key: Optional[str] = None,
    ) -> int:
        """Insert header, items and stock movements as one transaction.

        BEGIN IMMEDIATE takes the write lock before any stock is read, so two
        writers racing for the same product serialize here and the second one
        sees the stock left by the first.
        """
        lines = list(lines)
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            if idempotency_key:
                cur.execute("SELECT id, kind FROM documents WHERE idempotency_key=?", (idempotency_key,))
                row = cur.fetchone()
                if row:
                    if row[1] != kind.value:
                        raise ValidationError("Idempotency key already used for another document.")
                    conn.rollback()
                    return int(row[0])

            self._check_references(cur, customer_id, lines, kind.decrements_stock)

            cur.execute(
                """
                INSERT INTO documents (
                    kind, customer_id, date, status, payment_type,
                    vat_enabled, vat_percent, discount_percent, stamp_duty_millimes,
                    subtotal_millimes, discount_millimes, vat_millimes, total_millimes,
                    validity_days, idempotency_key, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    kind.value,
                    int(customer_id),
                    date_iso,
                    status,
                    payment_type,
                    1 if pricing.vat_enabled else 0,
                    str(pricing.vat_percent),
                    str(pricing.discount_percent),
                    to_millimes(totals.stamp_duty),
                    to_millimes(totals.subtotal),
                    to_millimes(totals.discount_amount),
                    to_millimes(totals.vat_amount),
                    to_millimes(totals.total),
                    validity_days,
                    idempotency_key,
                    created_at,
                ),
            )
            document_id = int(cur.lastrowid)

            self._insert_items(cur, document_id, lines, kind.decrements_stock, created_at)

            conn.commit()
            return document_id
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def update_document_with_items(
        self,
        document_id: int,
        kind: DocumentKind,
        customer_id: int,
        date_iso: str,
        status: str,
        payment_type: Optional[str],
        pricing: PricingParams,
        totals: Totals,
        validity_days: Optional[int],
        lines: Iterable[LineItem],
        updated_at: str,
    ) -> None:
        lines = list(lines)
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute("BEGIN IMMEDIATE")
            cur.execute("SELECT kind, status FROM documents WHERE id=?", (int(document_id),))
            row = cur.fetchone()
            if not row or str(row[0]) != kind.value:
                raise NotFoundError(f"Document not found: {document_id}")
            if str(row[1]) != "pending":
                raise ValidationError("Only pending documents can be edited.")

            if kind.decrements_stock:
                cur.execute(
                    "SELECT product_id, quantity FROM document_items WHERE document_id=? AND product_id IS NOT NULL",
                    (int(document_id),),
                )
                for product_id, qty in cur.fetchall():
                    cur.execute("UPDATE products SET stock = stock + ? WHERE id=?", (int(qty), int(product_id)))
                    self._append_ledger(cur, updated_at, int(product_id), int(qty), int(document_id), "edit_reversal")

            cur.execute("DELETE FROM document_items WHERE document_id=?", (int(document_id),))

            self._check_references(cur, customer_id, lines, kind.decrements_stock)

            cur.execute(
                """
                UPDATE documents
                SET customer_id=?, date=?, status=?, payment_type=?,
                    vat_enabled=?, vat_percent=?, discount_percent=?, stamp_duty_millimes=?,
                    subtotal_millimes=?, discount_millimes=?, vat_millimes=?, total_millimes=?,
                    validity_days=?
                WHERE id=?
                """,
                (
                    int(customer_id),
                    date_iso,
                    status,
                    payment_type,
                    1 if pricing.vat_enabled else 0,
                    str(pricing.vat_percent),
                    str(pricing.discount_percent),
                    to_millimes(totals.stamp_duty),
                    to_millimes(totals.subtotal),
                    to_millimes(totals.discount_amount),
                    to_millimes(totals.vat_amount),
                    to_millimes(totals.total),
                    validity_days,
                    int(document_id),
                ),
            )

            self._insert_items(cur, int(document_id), lines, kind.decrements_stock, updated_at)

            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _check_references(self, cur: sqlite3.Cursor, customer_id: int, lines: list[LineItem], needs_stock: bool) -> None:
        cur.execute("SELECT 1 FROM customers WHERE id=?", (int(customer_id),))
        if not cur.fetchone():
            raise NotFoundError(f"Customer not found: {customer_id}")

        for line in lines:
            if isinstance(line, ProductLine):
                cur.execute("SELECT name, stock FROM products WHERE id=?", (int(line.product_id),))
                row = cur.fetchone()
                if not row:
                    raise NotFoundError(f"Product not found: {line.product_id}")
                if needs_stock and int(row[1]) < int(line.quantity):
                    raise InsufficientStockError(f"Not enough stock for {row[0]}. Available: {row[1]}")
            else:
                cur.execute("SELECT 1 FROM services WHERE id=?", (int(line.service_id),))
                if not cur.fetchone():
                    raise NotFoundError(f"Service not found: {line.service_id}")

    def _insert_items(
        self,
        cur: sqlite3.Cursor,
        document_id: int,
        lines: list[LineItem],
        decrement_stock: bool,
        datetime_iso: str,
    ) -> None:
        for line in lines:
            is_product = isinstance(line, ProductLine)
            cur.execute(
                """
                INSERT INTO document_items (document_id, product_id, service_id, name, quantity, unit_price_millimes)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    document_id,
                    int(line.product_id) if is_product else None,
                    None if is_product else int(line.service_id),
                    line.name,
                    int(line.quantity),
                    to_millimes(line.unit_price),
                ),
            )
            if not (is_product and decrement_stock):
                continue

            cur.execute(
                "UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?",
                (int(line.quantity), int(line.product_id), int(line.quantity)),
            )
            if cur.rowcount != 1:
                raise InsufficientStockError(f"Not enough stock for {line.name}.")
            self._append_ledger(cur, datetime_iso, int(line.product_id), -int(line.quantity), document_id, None)

    def _append_ledger(
        self,
        cur: sqlite3.Cursor,
        datetime_iso: str,
        product_id: int,
        qty_delta: int,
        document_id: int,
        notes: Optional[str],
    ) -> None:
        cur.execute("SELECT stock FROM products WHERE id=?", (product_id,))
        stock_after = int(cur.fetchone()[0])
        cur.execute(
            """
            INSERT INTO stock_ledger (datetime, product_id, qty_delta, stock_after, document_id, notes)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (datetime_iso, product_id, qty_delta, stock_after, document_id, notes),
        )

    def _row_to_header(self, r) -> DocumentHeader:
        stamp = from_millimes(r[9])
        subtotal = from_millimes(r[10])
        discount = from_millimes(r[11])
        return DocumentHeader(
            id=int(r[0]),
            kind=DocumentKind(str(r[1])),
            customer_id=int(r[2]),
            date=str(r[3]),
            status=str(r[4]),
            payment_type=(str(r[5]) if r[5] is not None else None),
            pricing=PricingParams(
                vat_enabled=bool(r[6]),
                vat_percent=Decimal(str(r[7])),
                discount_percent=Decimal(str(r[8])),
                stamp_duty=stamp,
            ),
            totals=Totals(
                subtotal=subtotal,
                discount_amount=discount,
                taxable_base=subtotal - discount,
                vat_amount=from_millimes(r[12]),
                stamp_duty=stamp,
                total=from_millimes(r[13]),
            ),
            validity_days=(int(r[14]) if r[14] is not None else None),
            idempotency_key=(str(r[15]) if r[15] is not None else None),
            created_at=str(r[16]),
        )

    def get_document_header(self, document_id: int) -> Optional[DocumentHeader]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE id=?", (int(document_id),))
        r = cur.fetchone()
        conn.close()
        return self._row_to_header(r) if r else None

    def find_document_by_idempotency_key(self, key: str) -> Optional[DocumentHeader]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {_DOCUMENT_COLUMNS} FROM documents WHERE idempotency_key=?", (key,))
        r = cur.fetchone()
        conn.close()
        return self._row_to_header(r) if r else None

    def document_items_for_document(self, document_id: int) -> list[DocumentItem]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT id, document_id, product_id, service_id, name, quantity, unit_price_millimes
            FROM document_items
            WHERE document_id = ?
            ORDER BY id
        """,
            (int(document_id),),
        )
        rows = cur.fetchall()
        conn.close()
        return [
            DocumentItem(
                id=int(r[0]),
                document_id=int(r[1]),
                product_id=(int(r[2]) if r[2] is not None else None),
                service_id=(int(r[3]) if r[3] is not None else None),
                name=str(r[4]),
                quantity=int(r[5]),
                unit_price=from_millimes(r[6]),
            )
            for r in rows
        ]

    def list_documents(
        self,
        kind: Optional[DocumentKind] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
    ) -> list[DocumentHeader]:
        where = []
        params: list = []
        if kind is not None:
            where.append("kind = ?")
            params.append(kind.value)
        if start_iso is not None:
            where.append("date >= ?")
            params.append(start_iso)
        if end_iso is not None:
            where.append("date < ?")
            params.append(end_iso)

        sql = f"SELECT {_DOCUMENT_COLUMNS} FROM documents"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY date DESC, id DESC LIMIT ? OFFSET ?"
        params.extend([int(limit) if limit is not None else -1, int(offset)])

        conn = self._conn()
        cur = conn.cursor()
        cur.execute(sql, params)
        rows = cur.fetchall()
        conn.close()
        return [self._row_to_header(r) for r in rows]

    def monthly_document_totals(self, kind: DocumentKind, months: int = 6) -> list[tuple[str, Decimal]]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            SELECT substr(date,1,7) AS ym, COALESCE(SUM(total_millimes),0)
            FROM documents
            WHERE kind = ? AND status != 'cancelled'
            GROUP BY ym
            ORDER BY ym DESC
            LIMIT ?
            """,
            (kind.value, int(months)),
        )
        rows = list(reversed(cur.fetchall()))
        conn.close()
        return [(str(r[0]), from_millimes(r[1])) for r in rows]

    # ---------- Records ----------
    def add_supplier(self, name: str, email: str, phone: str, address: str, fiscal_number: Optional[str]) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO suppliers (name, email, phone, address, fiscal_number) VALUES (?, ?, ?, ?, ?)",
            (name, email, phone, address, fiscal_number),
        )
        sid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return sid

    def list_suppliers(self) -> list[Supplier]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, email, phone, address, fiscal_number FROM suppliers ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [
            Supplier(id=int(r[0]), name=str(r[1]), email=str(r[2]), phone=str(r[3]), address=str(r[4]), fiscal_number=r[5])
            for r in rows
        ]

    def add_employee(self, name: str, position: str, email: str, phone: str, salary: Decimal, hire_date: str) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            """
            INSERT INTO personnel (name, position, email, phone, salary_millimes, hire_date)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (name, position, email, phone, to_millimes(salary), hire_date),
        )
        eid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return eid

    def list_employees(self) -> list[Employee]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, name, position, email, phone, salary_millimes, hire_date FROM personnel ORDER BY name")
        rows = cur.fetchall()
        conn.close()
        return [
            Employee(
                id=int(r[0]),
                name=str(r[1]),
                position=str(r[2]),
                email=str(r[3]),
                phone=str(r[4]),
                salary=from_millimes(r[5]),
                hire_date=str(r[6]),
            )
            for r in rows
        ]

    def add_expense(self, description: str, amount: Decimal, date_iso: str, category: str) -> int:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(
            "INSERT INTO expenses (description, amount_millimes, date, category) VALUES (?, ?, ?, ?)",
            (description, to_millimes(amount), date_iso, category),
        )
        eid = int(cur.lastrowid)
        conn.commit()
        conn.close()
        return eid

    def set_expense_attachment(self, expense_id: int, path: str) -> None:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("UPDATE expenses SET attachment=? WHERE id=?", (path, int(expense_id)))
        conn.commit()
        conn.close()

    def list_expenses(self) -> list[Expense]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("SELECT id, description, amount_millimes, date, category, attachment FROM expenses ORDER BY date DESC, id DESC")
        rows = cur.fetchall()
        conn.close()
        return [
            Expense(
                id=int(r[0]),
                description=str(r[1]),
                amount=from_millimes(r[2]),
                date=str(r[3]),
                category=str(r[4]),
                attachment=(str(r[5]) if r[5] is not None else None),
            )
            for r in rows
        ]

    def integrity_check(self) -> str:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute("PRAGMA integrity_check")
        row = cur.fetchone()
        conn.close()
        return str(row[0]) if row else "unknown"
