from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PointProgram(db.Model):
    """
    Loyalty program: one point per ``spend_per_point_cents`` of sale total,
    each outstanding point carrying an estimated liability of
    ``cost_per_point_cents``.
    """
    __tablename__ = "point_programs"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    spend_per_point_cents = db.Column(db.Integer, nullable=False)
    cost_per_point_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "spend_per_point_cents": self.spend_per_point_cents,
            "cost_per_point_cents": self.cost_per_point_cents,
            "is_active": self.is_active,
            "tiers": [t.to_dict() for t in self.tiers],
        }


class PointRedemptionTier(db.Model):
    """Reward table entry: ``points_required`` points buy ``reward_value_cents`` of store credit."""
    __tablename__ = "point_redemption_tiers"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(db.Integer, db.ForeignKey("point_programs.id"), nullable=False, index=True)
    points_required = db.Column(db.Integer, nullable=False)
    reward_value_cents = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    program = db.relationship(
        "PointProgram", backref=db.backref("tiers", lazy=True, order_by="PointRedemptionTier.points_required")
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "program_id": self.program_id,
            "points_required": self.points_required,
            "reward_value_cents": self.reward_value_cents,
            "is_active": self.is_active,
        }


class CustomerPoints(db.Model):
    """Running point balance for one customer in one program."""
    __tablename__ = "customer_points"
    __table_args__ = (
        db.UniqueConstraint("customer_id", "program_id", name="uq_customer_points_customer_program"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    program_id = db.Column(db.Integer, db.ForeignKey("point_programs.id"), nullable=False, index=True)

    points = db.Column(db.Integer, nullable=False, default=0)
    total_earned = db.Column(db.Integer, nullable=False, default=0)
    total_redeemed = db.Column(db.Integer, nullable=False, default=0)
    estimated_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    program = db.relationship("PointProgram")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "program_id": self.program_id,
            "points": self.points,
            "total_earned": self.total_earned,
            "total_redeemed": self.total_redeemed,
            "estimated_cost_cents": self.estimated_cost_cents,
            "updated_at": to_utc_z(self.updated_at),
        }


class PointLog(db.Model):
    """
    Append-only history of point events.

    CHANGE TYPES: earn, redeem, adjust, reverse
    """
    __tablename__ = "point_logs"
    __table_args__ = (
        db.Index("ix_point_logs_customer_program", "customer_id", "program_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    program_id = db.Column(db.Integer, db.ForeignKey("point_programs.id"), nullable=False)
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    tier_id = db.Column(db.Integer, nullable=True)

    change_type = db.Column(db.String(16), nullable=False)
    points_change = db.Column(db.Integer, nullable=False)
    cost_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_amount_cents = db.Column(db.Integer, nullable=True)
    reward_value_cents = db.Column(db.Integer, nullable=True)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "program_id": self.program_id,
            "sale_id": self.sale_id,
            "tier_id": self.tier_id,
            "change_type": self.change_type,
            "points_change": self.points_change,
            "cost_amount_cents": self.cost_amount_cents,
            "sale_amount_cents": self.sale_amount_cents,
            "reward_value_cents": self.reward_value_cents,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
