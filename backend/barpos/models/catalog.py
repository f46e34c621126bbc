from __future__ import annotations

from ..extensions import db
from barpos.time_utils import to_utc_z


# Product kinds. The resolver and the ledger branch on these explicitly.
PRODUCT_KIND_SIMPLE = "SIMPLE"        # sellable, has its own inventory
PRODUCT_KIND_BASE = "BASE"            # raw component, inventory only, never sold
PRODUCT_KIND_COMPOSITE = "COMPOSITE"  # sellable, stock derived from its recipe

VALID_PRODUCT_KINDS = [
    PRODUCT_KIND_SIMPLE,
    PRODUCT_KIND_BASE,
    PRODUCT_KIND_COMPOSITE,
]

SELLABLE_PRODUCT_KINDS = [PRODUCT_KIND_SIMPLE, PRODUCT_KIND_COMPOSITE]
STOCKED_PRODUCT_KINDS = [PRODUCT_KIND_SIMPLE, PRODUCT_KIND_BASE]


class Product(db.Model):
    """
    Catalog entry.

    KIND:
    - SIMPLE: sold directly, holds InventoryRecord rows.
    - BASE: component only (e.g. a mixer bought by the case). Holds
      InventoryRecord rows but may never appear on an order line.
    - COMPOSITE: a combo. Never holds InventoryRecord rows; its stock is the
      stock of the components named by its recipe lines.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_kind_active", "kind", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    kind = db.Column(db.String(16), nullable=False, default=PRODUCT_KIND_SIMPLE)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    recipe_lines = db.relationship(
        "RecipeLine",
        foreign_keys="RecipeLine.product_id",
        back_populates="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="RecipeLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_composite(self) -> bool:
        return self.kind == PRODUCT_KIND_COMPOSITE

    def __repr__(self) -> str:
        return f"<Product id={self.id} code={self.code!r} kind={self.kind}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "kind": self.kind,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RecipeLine(db.Model):
    """
    One component of a COMPOSITE product.

    Mandatory lines (is_optional=False) are always consumed. Optional lines
    sharing an option_group are mutually exclusive: an order picks exactly
    one of them per group.
    """
    __tablename__ = "recipe_lines"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_recipe_lines_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    component_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Units of the component per unit of the composite
    quantity = db.Column(db.Integer, nullable=False, default=1)

    is_optional = db.Column(db.Boolean, nullable=False, default=False)
    option_group = db.Column(db.String(64), nullable=True)

    product = db.relationship("Product", foreign_keys=[product_id], back_populates="recipe_lines")
    component = db.relationship("Product", foreign_keys=[component_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "component_id": self.component_id,
            "component_code": self.component.code if self.component else None,
            "component_name": self.component.name if self.component else None,
            "quantity": self.quantity,
            "is_optional": self.is_optional,
            "option_group": self.option_group,
        }
