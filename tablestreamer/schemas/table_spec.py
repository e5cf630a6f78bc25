"""Validated per-table ingestion configuration"""

from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class SourceConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    location: str
    topic: str
    max_records: int = 5000
    offset_reset: Literal["earliest", "latest"] = "earliest"
    pull_retries: int = 2
    # every source.* key after layering, prefix stripped
    options: Dict[str, str] = Field(default_factory=dict)


class SchemaProviderRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "file"
    source_schema: str
    target_schema: Optional[str] = None


class KeyGeneratorRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str
    record_key_fields: List[str]
    partition_fields: List[str] = Field(default_factory=list)
    hive_style: bool = False


class CatalogTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    database: Optional[str] = None
    table: str
    partition_fields: List[str] = Field(default_factory=list)
    partition_extractor: str = "multi_part_keys"
    retries: int = 0


class TableIngestionSpec(BaseModel):
    """Everything one pipeline needs to ingest one table."""

    model_config = ConfigDict(frozen=True)

    table_id: str
    database: str
    table: str
    source: SourceConfig
    schema_provider: SchemaProviderRef
    key_generator: KeyGeneratorRef
    target_base_path: str
    error_policy: Literal["strict", "skip"] = "strict"
    catalog: CatalogTarget
    config_file: Optional[str] = None
    config_root: Optional[str] = None
    properties: Dict[str, str] = Field(default_factory=dict)

    @property
    def checkpoint_key(self) -> str:
        return self.table_id

    def missing_fields(self) -> List[str]:
        """Required values that are blank."""
        required = {
            "source.type": self.source.type,
            "source.location": self.source.location,
            "schemaprovider.source.schema.file": self.schema_provider.source_schema,
            "write.keygenerator.type": self.key_generator.type,
            "write.target.base.path": self.target_base_path,
        }
        missing = [name for name, value in required.items() if not (value or "").strip()]
        if not [f for f in self.key_generator.record_key_fields if f.strip()]:
            missing.append("write.recordkey.field")
        if self.catalog.enabled and not (self.catalog.database or "").strip():
            missing.append("catalog_sync.database")
        if self.source.max_records <= 0:
            missing.append("source.maxRecords")
        return missing
