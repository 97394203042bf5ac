"""
Values -- immutable identity objects shared by every stock component.

Responsibility:
    ``ProductKey`` is the stable identity of a sellable variant
    (product id + color + size).  ``Actor`` is the already-authenticated
    caller handed in by the presentation layer.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Products are identified by a stable product id resolved once by the
      producer, never by description text.
    - Missing variant attributes default to ``"Default"``.
    - A collapsed key (color and size both ``None``) spans every variant of a
      product.  It is valid for reads and never for writes.

Failure modes:
    - InvalidProductKeyError on construction with an empty product id, a
      separator character inside a component, a component equal to the
      collapsed marker, or a half-collapsed key.
"""

from __future__ import annotations

from dataclasses import dataclass

from stock_kernel.exceptions import InvalidAgencyError, InvalidProductKeyError

DEFAULT_VARIANT = "Default"
KEY_SEPARATOR = "|"
COLLAPSED_MARKER = "*"


def _normalize_component(value: str | None) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    return value or DEFAULT_VARIANT


@dataclass(frozen=True, slots=True)
class ProductKey:
    """
    Stable product variant identity.

    Guarantees:
        - Immutable and hashable, usable as a dict key in aggregation.
        - ``code`` is the canonical ``product_id|color|size`` string stored
          and indexed by the ledger and inventory tables.
    """

    product_id: str
    color: str | None = DEFAULT_VARIANT
    size: str | None = DEFAULT_VARIANT

    def __post_init__(self) -> None:
        product_id = str(self.product_id).strip() if self.product_id is not None else ""
        if not product_id:
            raise InvalidProductKeyError(repr(self.product_id), "product id is required")

        color = _normalize_component(self.color)
        size = _normalize_component(self.size)
        if (color is None) != (size is None):
            raise InvalidProductKeyError(
                product_id, "color and size must both be set or both be collapsed"
            )
        for part in (product_id, color, size):
            if part is not None and KEY_SEPARATOR in part:
                raise InvalidProductKeyError(
                    product_id, f"components may not contain {KEY_SEPARATOR!r}"
                )
            if part == COLLAPSED_MARKER:
                raise InvalidProductKeyError(
                    product_id, f"{COLLAPSED_MARKER!r} is reserved for collapsed keys"
                )

        object.__setattr__(self, "product_id", product_id)
        object.__setattr__(self, "color", color)
        object.__setattr__(self, "size", size)

    @classmethod
    def collapsed(cls, product_id: str) -> ProductKey:
        """Aggregation key spanning every color/size of ``product_id``."""
        return cls(product_id, color=None, size=None)

    @classmethod
    def from_code(cls, code: str) -> ProductKey:
        parts = (code or "").split(KEY_SEPARATOR)
        if len(parts) != 3:
            raise InvalidProductKeyError(code, "expected product_id|color|size")
        product_id, color, size = parts
        if color == COLLAPSED_MARKER and size == COLLAPSED_MARKER:
            return cls.collapsed(product_id)
        return cls(product_id, color, size)

    @property
    def is_collapsed(self) -> bool:
        return self.color is None

    @property
    def code(self) -> str:
        color = COLLAPSED_MARKER if self.color is None else self.color
        size = COLLAPSED_MARKER if self.size is None else self.size
        return KEY_SEPARATOR.join((self.product_id, color, size))

    def collapse(self) -> ProductKey:
        return ProductKey.collapsed(self.product_id)

    def __str__(self) -> str:
        return self.code


@dataclass(frozen=True, slots=True)
class Actor:
    """
    Authenticated caller identity supplied by the presentation layer.

    The kernel trusts these fields; it only checks ``role`` against the
    policy's reviewer roles and ``agency_id`` against the target agency.
    """

    user_id: str
    display_name: str
    role: str
    agency_id: str | None = None

    @property
    def name(self) -> str:
        return self.display_name or self.user_id


def coerce_product_key(value: ProductKey | str) -> ProductKey:
    """Accept a key or its ``code`` string."""
    if isinstance(value, ProductKey):
        return value
    return ProductKey.from_code(value)


def require_writable_key(value: ProductKey | str) -> ProductKey:
    """A concrete variant key; collapsed keys are read-only."""
    key = coerce_product_key(value)
    if key.is_collapsed:
        raise InvalidProductKeyError(
            key.code, "collapsed keys cannot be written to the ledger or inventory"
        )
    return key


def require_agency(agency_id: str | None) -> str:
    if agency_id is None or not str(agency_id).strip():
        raise InvalidAgencyError(agency_id)
    return str(agency_id).strip()
