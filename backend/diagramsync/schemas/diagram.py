from enum import Enum
from datetime import datetime, timezone
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field


class DatabaseType(str, Enum):
    GENERIC = "generic"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"
    SQL_SERVER = "sql_server"
    MARIADB = "mariadb"
    SQLITE = "sqlite"
    CLICKHOUSE = "clickhouse"
    COCKROACHDB = "cockroachdb"
    ORACLE = "oracle"


class EntitySnapshot(BaseModel):
    """
    Opaque, serializable diagram content snapshot.
    Sadece id zorunlu; geri kalan alanlar oldugu gibi saklanir.
    """
    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1, max_length=64)


class DBTable(EntitySnapshot):
    pass


class DBRelationship(EntitySnapshot):
    pass


class DBDependency(EntitySnapshot):
    pass


class Area(EntitySnapshot):
    pass


class DBCustomType(EntitySnapshot):
    pass


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Diagram(BaseModel):
    """Diagram; collection alanlari None ise hydrate edilmemis demektir."""
    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    database_type: DatabaseType = DatabaseType.GENERIC
    database_edition: Optional[str] = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)

    tables: Optional[list[DBTable]] = None
    relationships: Optional[list[DBRelationship]] = None
    dependencies: Optional[list[DBDependency]] = None
    areas: Optional[list[Area]] = None
    custom_types: Optional[list[DBCustomType]] = None


class DiagramUpdate(BaseModel):
    """
    Diagram patch. Sadece gonderilen alanlar uygulanir (model_fields_set);
    database_edition=None acikca gonderilirse edition temizlenir.
    """
    id: Optional[str] = Field(None, min_length=1, max_length=64)
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    database_type: Optional[DatabaseType] = None
    database_edition: Optional[str] = None
    updated_at: Optional[datetime] = None


class DiagramQueryOptions(BaseModel):
    """Eager hydration flag'leri; hepsi varsayilan olarak kapali."""
    include_tables: bool = False
    include_relationships: bool = False
    include_dependencies: bool = False
    include_areas: bool = False
    include_custom_types: bool = False

    @classmethod
    def all(cls) -> "DiagramQueryOptions":
        return cls(
            include_tables=True,
            include_relationships=True,
            include_dependencies=True,
            include_areas=True,
            include_custom_types=True,
        )

    @property
    def hydrates_anything(self) -> bool:
        return any(self.model_dump().values())


class ChartConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    default_diagram_id: str = ""


class DiagramFilter(BaseModel):
    """View filter blob (gizli tablolar, schema secimi vs.)"""
    model_config = ConfigDict(extra="allow")


class EntityPatch(BaseModel):
    """Merge-patch govdesi: attributes shallow merge edilir."""
    attributes: dict[str, Any]
    expected_version: Optional[int] = Field(None, ge=1)
