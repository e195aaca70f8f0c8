# src/db/crud.py
from __future__ import annotations

import functools
import json
import sqlite3
import uuid
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Optional

from db import models
from db.database import connect
from utils.errors import CatalogReadError, CatalogWriteError, CustomerExistsError
from utils.logger import get_logger

_logger = get_logger(__name__)

_PRODUCT_COLUMNS = """
    p.id, p.name, p.description, p.price, p.sale_price, p.sku, p.stock_quantity,
    p.category_id, p.images, p.slug, p.featured, p.status, p.seo_title,
    p.seo_description, p.created_at, p.updated_at,
    c.id AS c_id, c.name AS c_name, c.description AS c_description,
    c.image_url AS c_image_url, c.slug AS c_slug, c.created_at AS c_created_at
"""

_PRODUCT_FROM = "FROM products p LEFT JOIN categories c ON c.id = p.category_id"

_ORDER_COLUMNS = """
    id, order_number, customer_id, status, subtotal, tax_amount, shipping_amount,
    total_amount, billing_address, shipping_address, payment_status,
    payment_method, notes, created_at, updated_at
"""


def _new_id() -> str:
    return uuid.uuid4().hex


def _to_decimal(val) -> Optional[Decimal]:
    if val is None:
        return None
    try:
        return Decimal(str(val))
    except InvalidOperation:
        return None


def _to_datetime(val) -> Optional[datetime]:
    if val is None or isinstance(val, datetime):
        return val
    try:
        return datetime.fromisoformat(str(val))
    except ValueError:
        return None


def _escape_like(text: str) -> str:
    """Escape LIKE wildcards so the search text is matched literally."""
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _reads(func):
    """Turn driver errors raised by a read into CatalogReadError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except sqlite3.Error as exc:
            _logger.error(f"{func.__name__} failed: {exc}")
            raise CatalogReadError(f"{func.__name__} failed: {exc}") from exc

    return wrapper


def _writes(func):
    """Turn driver errors raised by a write into CatalogWriteError."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except sqlite3.Error as exc:
            _logger.error(f"{func.__name__} failed: {exc}")
            raise CatalogWriteError(f"{func.__name__} failed: {exc}") from exc

    return wrapper


# ---------------------------
# Row mapping
# ---------------------------


def _row_to_category(row, prefix: str = "") -> models.Category:
    return models.Category(
        id=row[f"{prefix}id"],
        name=row[f"{prefix}name"],
        slug=row[f"{prefix}slug"],
        description=row[f"{prefix}description"],
        image_url=row[f"{prefix}image_url"],
        created_at=_to_datetime(row[f"{prefix}created_at"]),
    )


def _row_to_product(row) -> models.Product:
    category = _row_to_category(row, "c_") if row["c_id"] is not None else None
    return models.Product(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        price=_to_decimal(row["price"]) or Decimal("0"),
        sale_price=_to_decimal(row["sale_price"]),
        sku=row["sku"],
        stock_quantity=int(row["stock_quantity"]),
        category_id=row["category_id"],
        images=tuple(json.loads(row["images"] or "[]")),
        slug=row["slug"],
        featured=bool(row["featured"]),
        status=row["status"],
        seo_title=row["seo_title"],
        seo_description=row["seo_description"],
        created_at=_to_datetime(row["created_at"]),
        updated_at=_to_datetime(row["updated_at"]),
        category=category,
    )


def _row_to_customer(row) -> models.Customer:
    return models.Customer(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        phone=row["phone"],
        created_at=_to_datetime(row["created_at"]),
    )


def _address_to_json(address: models.Address) -> str:
    return json.dumps(asdict(address))


def _address_from_json(raw: Optional[str]) -> models.Address:
    if not raw:
        return models.Address()
    data = json.loads(raw)
    known = models.Address.__dataclass_fields__
    return models.Address(**{k: v for k, v in data.items() if k in known})


def _row_to_order(row, items=(), customer=None) -> models.Order:
    return models.Order(
        id=row["id"],
        order_number=row["order_number"],
        customer_id=row["customer_id"],
        status=row["status"],
        subtotal=_to_decimal(row["subtotal"]),
        tax_amount=_to_decimal(row["tax_amount"]),
        shipping_amount=_to_decimal(row["shipping_amount"]),
        total_amount=_to_decimal(row["total_amount"]),
        billing_address=_address_from_json(row["billing_address"]),
        shipping_address=_address_from_json(row["shipping_address"]),
        payment_status=row["payment_status"],
        payment_method=row["payment_method"],
        notes=row["notes"],
        created_at=_to_datetime(row["created_at"]),
        updated_at=_to_datetime(row["updated_at"]),
        items=tuple(items),
        customer=customer,
    )


def _row_to_order_item(row) -> models.OrderItem:
    keys = row.keys()
    return models.OrderItem(
        id=row["id"],
        order_id=row["order_id"],
        product_id=row["product_id"],
        quantity=int(row["quantity"]),
        price=_to_decimal(row["price"]),
        total=_to_decimal(row["total"]),
        product_name=row["product_name"] if "product_name" in keys else None,
    )


# ---------------------------
# Categories & Products (read)
# ---------------------------


@_reads
async def list_categories() -> List[models.Category]:
    """All categories, ordered by name ascending."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, name, description, image_url, slug, created_at
            FROM categories
            ORDER BY name;
            """
        )
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_category(row) for row in rows]


@_reads
async def list_products(
    category_id: Optional[str] = None,
    featured: Optional[bool] = None,
    limit: Optional[int] = None,
    search: Optional[str] = None,
) -> List[models.Product]:
    """
    Active products, newest first.

    Filters:
    - category_id: only products of that category
    - featured: when True, only featured products (False/None means no filter)
    - search: case-insensitive substring match on name OR description;
      blank text is ignored
    - limit: maximum number of rows (ignored unless positive)
    """
    where = ["p.status = 'active'"]
    params: List[object] = []

    if category_id:
        where.append("p.category_id = ?")
        params.append(category_id)

    if featured:
        where.append("p.featured = 1")

    phrase = (search or "").strip().lower()
    if phrase:
        like = f"%{_escape_like(phrase)}%"
        where.append(
            "(LOWER(p.name) LIKE ? ESCAPE '\\' "
            "OR LOWER(COALESCE(p.description, '')) LIKE ? ESCAPE '\\')"
        )
        params.extend([like, like])

    sql = f"""
        SELECT {_PRODUCT_COLUMNS}
        {_PRODUCT_FROM}
        WHERE {" AND ".join(where)}
        ORDER BY p.created_at DESC, p.id
    """
    if limit is not None and limit > 0:
        sql += " LIMIT ?"
        params.append(int(limit))

    async with connect() as conn:
        cur = await conn.execute(sql + ";", tuple(params))
        rows = await cur.fetchall()
        await cur.close()
    return [_row_to_product(row) for row in rows]


@_reads
async def get_product_by_slug(slug: str) -> Optional[models.Product]:
    """Fetch an active product by slug; None if absent or inactive."""
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_PRODUCT_COLUMNS}
            {_PRODUCT_FROM}
            WHERE p.slug = ? AND p.status = 'active';
            """,
            (slug,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_product(row)


@_reads
async def get_product(product_id: str) -> Optional[models.Product]:
    """Fetch a product by id regardless of status."""
    async with connect() as conn:
        cur = await conn.execute(
            f"""
            SELECT {_PRODUCT_COLUMNS}
            {_PRODUCT_FROM}
            WHERE p.id = ?;
            """,
            (product_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_product(row)


# ---------------------------
# Customers
# ---------------------------


@_reads
async def find_customer_by_email(email: str) -> Optional[models.Customer]:
    """Return the customer registered with `email` (case-insensitive), or None."""
    async with connect() as conn:
        cur = await conn.execute(
            """
            SELECT id, email, first_name, last_name, phone, created_at
            FROM customers
            WHERE email = ? COLLATE NOCASE
            LIMIT 1;
            """,
            (email.strip(),),
        )
        row = await cur.fetchone()
        await cur.close()
    if not row:
        return None
    return _row_to_customer(row)


@_writes
async def create_customer(
    email: str,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
) -> models.Customer:
    """
    Insert a customer. Raises CustomerExistsError if the email is taken,
    which callers treat as "already exists, re-fetch".
    """
    customer_id = _new_id()
    async with connect() as conn:
        try:
            await conn.execute(
                """
                INSERT INTO customers(id, email, first_name, last_name, phone)
                VALUES (?, ?, ?, ?, ?);
                """,
                (customer_id, email.strip(), first_name, last_name, phone or None),
            )
        except sqlite3.IntegrityError as exc:
            if "customers.email" in str(exc):
                raise CustomerExistsError(email) from exc
            raise
        await conn.commit()
        cur = await conn.execute(
            "SELECT id, email, first_name, last_name, phone, created_at FROM customers WHERE id = ?;",
            (customer_id,),
        )
        row = await cur.fetchone()
        await cur.close()
    return _row_to_customer(row)


# ---------------------------
# Orders
# ---------------------------


@_writes
async def create_order(
    order_number: str,
    customer_id: Optional[str],
    subtotal: Decimal,
    tax_amount: Decimal,
    shipping_amount: Decimal,
    total_amount: Decimal,
    billing_address: models.Address,
    shipping_address: models.Address,
    payment_method: Optional[str],
    notes: Optional[str] = None,
) -> models.Order:
    """Insert an order with status and payment status 'pending'."""
    order_id = _new_id()
    async with connect() as conn:
        await conn.execute(
            """
            INSERT INTO orders(id, order_number, customer_id, status, subtotal, tax_amount,
                               shipping_amount, total_amount, billing_address, shipping_address,
                               payment_status, payment_method, notes)
            VALUES (?, ?, ?, 'pending', ?, ?, ?, ?, ?, ?, 'pending', ?, ?);
            """,
            (
                order_id,
                order_number,
                customer_id,
                str(subtotal),
                str(tax_amount),
                str(shipping_amount),
                str(total_amount),
                _address_to_json(billing_address),
                _address_to_json(shipping_address),
                payment_method,
                notes,
            ),
        )
        await conn.commit()
        cur = await conn.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = ?;", (order_id,)
        )
        row = await cur.fetchone()
        await cur.close()
    _logger.debug(f"Created order {order_number} ({order_id}).")
    return _row_to_order(row)


@_writes
async def create_order_items(
    order_id: str, items: Iterable[models.OrderItemDraft]
) -> List[models.OrderItem]:
    """
    Bulk insert order items in one transaction: either every line is written
    or none is. (order_id, product_id) is unique, so a repeated call for the
    same order fails instead of duplicating lines.
    """
    created: List[models.OrderItem] = []
    async with connect() as conn:
        try:
            for draft in items:
                item = models.OrderItem(
                    id=_new_id(),
                    order_id=order_id,
                    product_id=draft.product_id,
                    quantity=draft.quantity,
                    price=draft.price,
                    total=draft.total,
                )
                await conn.execute(
                    """
                    INSERT INTO order_items(id, order_id, product_id, quantity, price, total)
                    VALUES (?, ?, ?, ?, ?, ?);
                    """,
                    (
                        item.id,
                        item.order_id,
                        item.product_id,
                        item.quantity,
                        str(item.price),
                        str(item.total),
                    ),
                )
                created.append(item)
            await conn.commit()
        except sqlite3.Error:
            await conn.rollback()
            raise
    return created


@_reads
async def get_order(order_number: str) -> Optional[models.Order]:
    """
    Return the order with its customer and items (with product names),
    or None if no order has that number.
    """
    async with connect() as conn:
        cur = await conn.execute(
            f"SELECT {_ORDER_COLUMNS} FROM orders WHERE order_number = ?;",
            (order_number.strip(),),
        )
        order_row = await cur.fetchone()
        await cur.close()
        if not order_row:
            return None

        cur = await conn.execute(
            """
            SELECT oi.id, oi.order_id, oi.product_id, oi.quantity, oi.price, oi.total,
                   p.name AS product_name
            FROM order_items oi
            LEFT JOIN products p ON p.id = oi.product_id
            WHERE oi.order_id = ?
            ORDER BY p.name, oi.id;
            """,
            (order_row["id"],),
        )
        item_rows = await cur.fetchall()
        await cur.close()

        customer = None
        if order_row["customer_id"]:
            cur = await conn.execute(
                "SELECT id, email, first_name, last_name, phone, created_at FROM customers WHERE id = ?;",
                (order_row["customer_id"],),
            )
            customer_row = await cur.fetchone()
            await cur.close()
            if customer_row:
                customer = _row_to_customer(customer_row)

    items = [_row_to_order_item(row) for row in item_rows]
    return _row_to_order(order_row, items=items, customer=customer)


# ---------------------------
# Catalog maintenance
# ---------------------------

_UNSET = object()


@_writes
async def update_product_price(
    product_id: str,
    price: Optional[Decimal] = None,
    sale_price=_UNSET,
) -> bool:
    """
    Update price and/or sale_price (only provided fields; pass sale_price=None
    to end a sale). Return True if a row was updated.
    """
    sets: List[str] = []
    params: List[object] = []
    if price is not None:
        sets.append("price = ?")
        params.append(str(price))
    if sale_price is not _UNSET:
        sets.append("sale_price = ?")
        params.append(None if sale_price is None else str(sale_price))
    if not sets:
        return False
    sets.append("updated_at = strftime('%Y-%m-%dT%H:%M:%f', 'now')")
    async with connect() as conn:
        res = await conn.execute(
            f"UPDATE products SET {', '.join(sets)} WHERE id = ?;",
            tuple(params + [product_id]),
        )
        await conn.commit()
        return res.rowcount > 0
