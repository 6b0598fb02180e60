from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
)

metadata = MetaData()

projects = Table(
    "projects",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", Text, nullable=False),
    Column("description", Text, nullable=True),
    Column("open_date", Date, nullable=True),
    Column("use_well_water", Boolean, nullable=False, default=False),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

tasks = Table(
    "tasks",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("project_id", String(36), ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("name", Text, nullable=False),
    Column("start_date", DateTime, nullable=False),
    Column("end_date", DateTime, nullable=False),
    Column("duration", Integer, nullable=False),
    Column("progress", Integer, nullable=False, default=0),
    Column("status", String(32), nullable=False, default="not-started"),
    Column("dependencies", JSON, nullable=False, default=list),
    Column("category", String(64), nullable=False),
    Column("sub_tasks", JSON, nullable=False, default=list),
    Column("is_hidden", Boolean, nullable=False, default=False),
    Column("color", String(16), nullable=True),
    Column("memo", Text, nullable=True),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)
