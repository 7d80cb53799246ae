"""
Local Embedded Store

Oturum acmamis kullanici icin on-device backend. Remote store ile ayni
mantiksal tablolari process memory'de tutar; LOCAL_STORE_PATH verilirse her
mutasyondan sonra JSON dosyasina yazar ve acilista oradan yukler.

Cihaz tek kullanicilidir, bu yuzden kayitlar user_id tasimaz.
Mutasyonlar await noktasi icermez; event loop uzerinde atomik calisir.
"""

import copy
import json
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from diagramsync.exceptions import AlreadyExistsException, ConflictException, StorageException
from diagramsync.schemas.diagram import (
    ChartConfig,
    Diagram,
    DiagramFilter,
    DiagramQueryOptions,
    DiagramUpdate,
    EntitySnapshot,
)
from diagramsync.storage.base import (
    ENTITY_KINDS,
    EntityInput,
    EntityKind,
    StorageBackend,
    coerce_config,
    coerce_diagram_update,
    coerce_entity,
    coerce_filter,
    merge_payload,
    requested_kinds,
)
from diagramsync.utils.logging_config import storage_logger

DIAGRAM_FIELDS = ("id", "name", "database_type", "database_edition", "created_at", "updated_at")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _empty_tables() -> dict[str, Any]:
    tables: dict[str, Any] = {
        "diagrams": {},
        "user_config": None,
        "diagram_filters": {},
        "sequence": 0,
    }
    for kind in ENTITY_KINDS:
        tables[kind.name] = {}
    return tables


class LocalStorage(StorageBackend):
    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path else None
        self._tables = _empty_tables()
        if self.path is not None and self.path.exists():
            self._load()

    # ==================== Persistence ====================

    def _load(self) -> None:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StorageException(f"Local store could not be read: {e}", "load local store") from e

        tables = _empty_tables()
        tables.update(data)
        self._tables = tables
        storage_logger.info(f"Local store loaded from {self.path}")

    def _flush(self, action: str) -> None:
        """Dosyaya atomik yaz (temp dosya + replace); path yoksa sadece memory."""
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(self._tables, fh)
            os.replace(tmp_name, self.path)
        except OSError as e:
            storage_logger.error(f"[LocalStorage] {action} failed: {e}")
            raise StorageException(str(e), action) from e

    def _next_sequence(self) -> int:
        self._tables["sequence"] += 1
        return self._tables["sequence"]

    def _content(self, kind: EntityKind) -> dict[str, dict[str, Any]]:
        return self._tables[kind.name]

    # ==================== Config ====================

    async def get_config(self) -> Optional[ChartConfig]:
        config = self._tables["user_config"]
        return ChartConfig.model_validate(copy.deepcopy(config["settings"])) if config else None

    async def update_config(self, config: Union[ChartConfig, Mapping[str, Any]]) -> None:
        existing = self._tables["user_config"]
        base = existing["settings"] if existing else {"default_diagram_id": ""}
        self._tables["user_config"] = {
            "settings": {**base, **copy.deepcopy(coerce_config(config))},
            "updated_at": _now_iso(),
        }
        self._flush("upsert config")

    # ==================== Diagram filter ====================

    async def get_diagram_filter(self, diagram_id: str) -> Optional[DiagramFilter]:
        row = self._tables["diagram_filters"].get(diagram_id)
        return DiagramFilter.model_validate(copy.deepcopy(row["filter"])) if row else None

    async def update_diagram_filter(self, diagram_id: str, filter: Union[DiagramFilter, Mapping[str, Any]]) -> None:
        self._tables["diagram_filters"][diagram_id] = {
            "diagram_id": diagram_id,
            "filter": copy.deepcopy(coerce_filter(filter)),
            "updated_at": _now_iso(),
        }
        self._flush("upsert diagram filter")

    async def delete_diagram_filter(self, diagram_id: str) -> None:
        if self._tables["diagram_filters"].pop(diagram_id, None) is not None:
            self._flush("delete from diagram_filters")

    # ==================== Diagrams ====================

    def _to_diagram(self, row: Mapping[str, Any]) -> Diagram:
        return Diagram.model_validate({field: row[field] for field in DIAGRAM_FIELDS})

    def _hydrate(self, diagram: Diagram, kinds: list[EntityKind]) -> Diagram:
        for kind in kinds:
            setattr(diagram, kind.diagram_field, self._list_entities(kind, diagram.id))
        return diagram

    async def add_diagram(self, diagram: Diagram) -> None:
        diagrams = self._tables["diagrams"]
        if diagram.id in diagrams:
            raise AlreadyExistsException(f"Diagram {diagram.id} already exists", "insert diagram")

        started_at = _now_iso()
        row = diagram.model_dump(mode="json", include=set(DIAGRAM_FIELDS))
        diagrams[diagram.id] = row

        try:
            for kind in ENTITY_KINDS:
                for entity in getattr(diagram, kind.diagram_field) or []:
                    self._insert_entity(kind, diagram.id, entity)
        finally:
            # Yarida kalan insert'ler remote store'daki gibi kalici kalir
            row["updated_at"] = started_at
            self._flush("insert diagram")

        storage_logger.info("Diagram added", extra={"diagram_id": diagram.id, "storage": "local"})

    async def list_diagrams(self, options: Optional[DiagramQueryOptions] = None) -> list[Diagram]:
        diagrams = [self._to_diagram(row) for row in self._tables["diagrams"].values()]
        diagrams.sort(key=lambda d: _aware(d.updated_at), reverse=True)

        kinds = requested_kinds(options)
        if kinds:
            for diagram in diagrams:
                self._hydrate(diagram, kinds)
        return diagrams

    async def get_diagram(self, diagram_id: str, options: Optional[DiagramQueryOptions] = None) -> Optional[Diagram]:
        row = self._tables["diagrams"].get(diagram_id)
        if row is None:
            return None
        return self._hydrate(self._to_diagram(row), requested_kinds(options))

    async def update_diagram(self, diagram_id: str, attributes: Union[DiagramUpdate, Mapping[str, Any]]) -> None:
        patch = coerce_diagram_update(attributes)
        supplied = patch.model_fields_set
        renaming = bool(patch.id) and patch.id != diagram_id

        if renaming and patch.id in self._tables["diagrams"]:
            raise AlreadyExistsException(f"Diagram {patch.id} already exists", "update diagram id")

        row = self._tables["diagrams"].get(diagram_id)
        if row is not None:
            if "name" in supplied and patch.name is not None:
                row["name"] = patch.name
            if "database_type" in supplied and patch.database_type is not None:
                row["database_type"] = patch.database_type.value
            if "database_edition" in supplied:
                row["database_edition"] = patch.database_edition
            if patch.updated_at is not None:
                row["updated_at"] = _aware(patch.updated_at).isoformat()

        if renaming:
            self._rename_diagram(diagram_id, patch.id)

        self._flush("update diagram")

    def _rename_diagram(self, old_id: str, new_id: str) -> None:
        diagrams = self._tables["diagrams"]
        row = diagrams.pop(old_id, None)
        if row is not None:
            row["id"] = new_id
            diagrams[new_id] = row

        for kind in ENTITY_KINDS:
            for record in self._content(kind).values():
                if record["diagram_id"] == old_id:
                    record["diagram_id"] = new_id

        filters = self._tables["diagram_filters"]
        if old_id in filters:
            moved = filters.pop(old_id)
            moved["diagram_id"] = new_id
            filters[new_id] = moved

        storage_logger.info("Diagram renamed", extra={"old_id": old_id, "new_id": new_id, "storage": "local"})

    async def delete_diagram(self, diagram_id: str) -> None:
        for kind in ENTITY_KINDS:
            self._delete_where(kind, diagram_id)
        self._tables["diagram_filters"].pop(diagram_id, None)
        self._tables["diagrams"].pop(diagram_id, None)
        self._flush("delete diagram")
        storage_logger.info("Diagram deleted", extra={"diagram_id": diagram_id, "storage": "local"})

    # ==================== Content ====================

    def _insert_entity(self, kind: EntityKind, diagram_id: str, entity: EntityInput) -> None:
        snapshot = coerce_entity(kind, entity)
        content = self._content(kind)
        if snapshot.id in content:
            raise AlreadyExistsException(f"{kind.label} {snapshot.id} already exists", f"insert into {kind.name}")
        content[snapshot.id] = {
            "diagram_id": diagram_id,
            "payload": copy.deepcopy(snapshot.model_dump(mode="json")),
            "version": 1,
            "sequence": self._next_sequence(),
            "created_at": _now_iso(),
        }

    def _find(self, kind: EntityKind, diagram_id: str, entity_id: str) -> Optional[dict[str, Any]]:
        record = self._content(kind).get(entity_id)
        if record is None or record["diagram_id"] != diagram_id:
            return None
        return record

    def _list_entities(self, kind: EntityKind, diagram_id: str) -> list[EntitySnapshot]:
        records = [r for r in self._content(kind).values() if r["diagram_id"] == diagram_id]
        records.sort(key=lambda r: r["sequence"])
        return [kind.snapshot.model_validate(copy.deepcopy(r["payload"])) for r in records]

    def _delete_where(self, kind: EntityKind, diagram_id: str) -> None:
        content = self._content(kind)
        for entity_id in [key for key, r in content.items() if r["diagram_id"] == diagram_id]:
            del content[entity_id]

    async def add_entity(self, kind: EntityKind, diagram_id: str, entity: EntityInput) -> None:
        self._insert_entity(kind, diagram_id, entity)
        self._flush(f"insert into {kind.name}")

    async def get_entity(self, kind: EntityKind, diagram_id: str, entity_id: str) -> Optional[EntitySnapshot]:
        record = self._find(kind, diagram_id, entity_id)
        return kind.snapshot.model_validate(copy.deepcopy(record["payload"])) if record else None

    async def get_entity_version(self, kind: EntityKind, diagram_id: str, entity_id: str) -> Optional[int]:
        record = self._find(kind, diagram_id, entity_id)
        return record["version"] if record else None

    async def update_entity(
        self,
        kind: EntityKind,
        entity_id: str,
        attributes: Mapping[str, Any],
        expected_version: Optional[int] = None,
    ) -> None:
        record = self._content(kind).get(entity_id)
        if record is None:
            return
        if expected_version is not None and record["version"] != expected_version:
            raise ConflictException(kind.label, entity_id, expected_version, record["version"])

        record["payload"] = merge_payload(record["payload"], copy.deepcopy(dict(attributes)))
        record["version"] += 1
        self._flush(f"update {kind.name} {entity_id}")

    async def put_entity(self, kind: EntityKind, diagram_id: str, entity: EntityInput) -> None:
        snapshot = coerce_entity(kind, entity)
        record = self._content(kind).get(snapshot.id)
        if record is None:
            self._insert_entity(kind, diagram_id, snapshot)
        else:
            record["diagram_id"] = diagram_id
            record["payload"] = copy.deepcopy(snapshot.model_dump(mode="json"))
            record["version"] += 1
        self._flush(f"upsert into {kind.name}")

    async def delete_entity(self, kind: EntityKind, diagram_id: str, entity_id: str) -> None:
        if self._find(kind, diagram_id, entity_id) is not None:
            del self._content(kind)[entity_id]
            self._flush(f"delete from {kind.name}")

    async def list_entities(self, kind: EntityKind, diagram_id: str) -> list[EntitySnapshot]:
        return self._list_entities(kind, diagram_id)

    async def delete_diagram_entities(self, kind: EntityKind, diagram_id: str) -> None:
        self._delete_where(kind, diagram_id)
        self._flush(f"delete from {kind.name}")
