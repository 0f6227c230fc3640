"""
Financing Application Portal
Directory domain models - organisation reference data.

Models:
    - District: top-level region
    - Branch: belongs to a District; home of branch users
    - Product: financing product offered to customers (soft-deletable)
"""

from datetime import datetime, timezone

from loan_portal.models import db


class District(db.Model):
    """Region grouping several branches. Referenced by approver assignments."""

    __tablename__ = "districts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    code = db.Column(db.String(50), nullable=True, unique=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    branches = db.relationship("Branch", back_populates="district", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<District {self.id}: {self.name}>"


class Branch(db.Model):
    """Branch office. Name is unique within its district."""

    __tablename__ = "branches"
    __table_args__ = (
        db.UniqueConstraint("district_id", "name", name="uq_branch_district_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    district_id = db.Column(
        db.Integer, db.ForeignKey("districts.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(50), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    phone = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    district = db.relationship("District", back_populates="branches")

    def to_dict(self, include_district=False):
        d = {
            "id": self.id,
            "district_id": self.district_id,
            "name": self.name,
            "code": self.code,
            "address": self.address,
            "phone": self.phone,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_district and self.district:
            d["district"] = self.district.to_dict()
        return d

    def __repr__(self):
        return f"<Branch {self.id}: {self.name}>"


class Product(db.Model):
    """
    Financing product.

    ``is_active=False`` is a soft delete: the product disappears from the
    submission picker but historical applications keep referencing it.
    """

    __tablename__ = "products"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    product_code = db.Column(db.String(50), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "product_code": self.product_code,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Product {self.id}: {self.name}>"
