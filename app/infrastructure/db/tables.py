from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
)

metadata = MetaData()

margin_rules = Table(
    "margin_rules",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("description", String(500)),
    Column("type", String(16), nullable=False),
    Column("value", Numeric(7, 2), nullable=False),
    Column("fixed_amount", Numeric(12, 2), nullable=False),
    Column("currency", String(3), nullable=False),
    Column("priority", Integer, nullable=False, default=0),
    Column("status", String(16), nullable=False),
    Column("conditions", JSON, nullable=False),
    Column("applied_count", Integer, nullable=False, default=0),
    Column("total_revenue_generated", Numeric(14, 2), nullable=False, default=0),
    Column("created_by", String(100)),
    Column("updated_by", String(100)),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

# One row per attributed booking; the unique correlation id makes attribution idempotent.
margin_rule_applications = Table(
    "margin_rule_applications",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("correlation_id", String(64), nullable=False, unique=True),
    Column("rule_id", String(64), ForeignKey("margin_rules.id", ondelete="SET NULL")),
    Column("margin_amount", Numeric(12, 2), nullable=False),
    Column("created_at", DateTime, nullable=False),
)

reservations = Table(
    "reservations",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("reservation_code", String(50), nullable=False, unique=True),
    Column("correlation_id", String(64), nullable=False, unique=True),
    Column("hotel_id", String(64), nullable=False),
    Column("hotel_name", String(255)),
    Column("room_name", String(255)),
    Column("meal_type", String(32)),
    Column("check_in", Date, nullable=False),
    Column("check_out", Date, nullable=False),
    Column("guest_count", Integer, nullable=False),
    Column("state", String(32), nullable=False, index=True),
    Column("status", String(32), nullable=False),
    Column("customer_price", Numeric(12, 2), nullable=False),
    Column("currency_code", String(3), nullable=False),
    Column("supplier_order_id", String(64)),
    Column("attempt", JSON, nullable=False),
    Column("lock_version", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

reservation_transitions = Table(
    "reservation_transitions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("correlation_id", String(64), nullable=False, index=True),
    Column("from_state", String(32), nullable=False),
    Column("to_state", String(32), nullable=False),
    Column("payload", JSON),
    Column("recorded_at", DateTime, nullable=False),
)
