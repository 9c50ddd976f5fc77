"""Database models for the SQL store.

Models are defined using SQLModel (SQLAlchemy + Pydantic). Each row keeps
the natural-key columns needed for lookups and constraints, and the entity
itself as a JSON document in the value column.
"""

from sqlalchemy import Column, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class ServiceInstanceRecord(SQLModel, table=True):
    """Service instance row; value excludes file shares (see FileShareRecord)."""

    __tablename__ = "service_instances"

    id: str = Field(primary_key=True, max_length=255)
    organization_guid: str = Field(default="", max_length=255)
    space_guid: str = Field(default="", max_length=255)
    storage_account_name: str = Field(default="", max_length=255)
    value: str = Field(sa_column=Column(Text, nullable=False))

    __table_args__ = (
        UniqueConstraint(
            "organization_guid", "space_guid", "storage_account_name", name="storage_account"
        ),
    )


class BindingRecord(SQLModel, table=True):
    """Service binding row; value is the stored bind request."""

    __tablename__ = "service_bindings"

    id: str = Field(primary_key=True, max_length=255)
    value: str = Field(sa_column=Column(Text, nullable=False))


class FileShareRecord(SQLModel, table=True):
    """File share row, one per (instance, share).

    Shares are rows of their own so that different shares of one instance
    can be updated by different broker processes without lost updates.
    """

    __tablename__ = "file_shares"

    id: str = Field(primary_key=True, max_length=255)  # {instance_id}-{file_share_name}
    instance_id: str = Field(foreign_key="service_instances.id", max_length=255, index=True)
    file_share_name: str = Field(max_length=255)
    value: str = Field(sa_column=Column(Text, nullable=False))

    __table_args__ = (
        UniqueConstraint("instance_id", "file_share_name", name="file_share"),
    )
