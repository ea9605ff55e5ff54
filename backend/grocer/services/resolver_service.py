# Overview: Service-layer product resolution for cart lines; maps client identifiers to catalog rows.

"""
Resolver Service - best-effort product lookup for submitted cart lines

WHY: Two clients identify products differently. The admin panel sends the
24-hex primary key; the mobile app sends an integer fingerprint of it
(see fingerprint_service). Older app builds also sent fingerprints computed
with other hash variants, or stale ids, so the lookup falls back to the
line's name and price.

PRIORITY (first hit wins):
1. primary_key    - identifier is a canonical 24-hex id
2. fingerprint    - identifier is numeric; match the stored fingerprint
3. name           - exact product name from the line (generic names ignored)
4. price          - exact unit price from the line, first by creation order
5. alternate_hash - numeric identifier; recompute variant hashes over a
                    bounded scan of the catalog

KNOWN-LOSSY: steps 4 and 5 can bind a line to the wrong product when
prices or hashes collide. That is the accepted legacy behaviour; do not
tighten it without a client-side change.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Sequence

from flask import current_app

from ..ids import is_object_id
from ..models import Product
from ..validation import coerce_optional_money
from . import catalog_service
from .fingerprint_service import candidate_fingerprints


GENERIC_PRODUCT_NAMES = {"unknown product"}


@dataclass(frozen=True)
class ResolutionRequest:
    identifier: Any
    hint_name: str | None = None
    hint_price: Decimal | None = None

    @property
    def numeric_identifier(self) -> int | None:
        return as_numeric_identifier(self.identifier)


@dataclass(frozen=True)
class Resolution:
    product: Product
    strategy: str


Strategy = Callable[[ResolutionRequest], "Product | None"]


# Largest value any fingerprint variant can take (unsigned 32-bit)
MAX_FINGERPRINT = 0xFFFFFFFF


def as_numeric_identifier(identifier: Any) -> int | None:
    """
    Integer form of a numeric identifier (int, integral float, digit string).

    Values outside [0, MAX_FINGERPRINT] cannot be fingerprints and return None.
    """
    if isinstance(identifier, bool):
        return None
    numeric = None
    if isinstance(identifier, int):
        numeric = identifier
    elif isinstance(identifier, float):
        numeric = int(identifier) if identifier.is_integer() else None
    elif isinstance(identifier, str):
        stripped = identifier.strip()
        if stripped.isdecimal():
            numeric = int(stripped)
    if numeric is None or not 0 <= numeric <= MAX_FINGERPRINT:
        return None
    return numeric


def by_primary_key(request: ResolutionRequest) -> Product | None:
    if not is_object_id(request.identifier):
        return None
    return catalog_service.get_product(request.identifier)


def by_fingerprint(request: ResolutionRequest) -> Product | None:
    numeric = request.numeric_identifier
    if numeric is None:
        return None
    return catalog_service.find_by_fingerprint(numeric)


def by_name(request: ResolutionRequest) -> Product | None:
    name = (request.hint_name or "").strip()
    if not name or name.lower() in GENERIC_PRODUCT_NAMES:
        return None
    return catalog_service.find_by_name(name)


def by_price(request: ResolutionRequest) -> Product | None:
    if request.hint_price is None or request.hint_price <= 0:
        return None
    return catalog_service.find_by_price(request.hint_price)


def by_alternate_hash(request: ResolutionRequest) -> Product | None:
    numeric = request.numeric_identifier
    if numeric is None or not current_app.config.get("RESOLVER_ALTERNATE_HASHES", True):
        return None

    limit = current_app.config.get("RESOLVER_SCAN_LIMIT", 100)
    for product in catalog_service.scan_products(limit=limit):
        variants = candidate_fingerprints(product.id)
        for variant_name, value in variants.items():
            if value == numeric:
                current_app.logger.warning(
                    "Resolved identifier %s to product %s via %s hash variant",
                    numeric, product.id, variant_name,
                )
                return product
    return None


DEFAULT_STRATEGIES: tuple[tuple[str, Strategy], ...] = (
    ("primary_key", by_primary_key),
    ("fingerprint", by_fingerprint),
    ("name", by_name),
    ("price", by_price),
    ("alternate_hash", by_alternate_hash),
)


def resolve(
    identifier: Any,
    hint_name: str | None = None,
    hint_price: Any = None,
    *,
    strategies: Sequence[tuple[str, Strategy]] = DEFAULT_STRATEGIES,
) -> Resolution | None:
    """
    Resolve a client product identifier to a catalog Product.

    Returns a Resolution naming the strategy that matched, or None when
    every strategy misses. A miss is not an error: callers skip the line.
    """
    if identifier is None or isinstance(identifier, bool):
        return None

    request = ResolutionRequest(
        identifier=identifier,
        hint_name=hint_name if isinstance(hint_name, str) else None,
        hint_price=hint_price if isinstance(hint_price, Decimal) else coerce_optional_money(hint_price),
    )

    for name, strategy in strategies:
        product = strategy(request)
        if product is not None:
            return Resolution(product=product, strategy=name)
    return None
