"""Include-chain resolution and per-table spec construction."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple, Union

from pydantic import ValidationError

from tablestreamer.core.errors import CyclicIncludeError, InvalidTableConfigError, MissingIncludeError, TableConfigError
from tablestreamer.core.logging import get_logger
from tablestreamer.plugins import Plugins, default_plugins
from tablestreamer.resolution import keys
from tablestreamer.resolution.layer import PropertyLayer, merge
from tablestreamer.schemas.table_spec import (
    CatalogTarget,
    KeyGeneratorRef,
    SchemaProviderRef,
    SourceConfig,
    TableIngestionSpec,
)

log = get_logger("resolution.resolver")


class _LayerArena:
    """Layers loaded during one ``resolve`` call, addressed by index."""

    def __init__(self):
        self.layers: List[PropertyLayer] = []
        self.paths: List[str] = []
        self.index: Dict[str, int] = {}
        self.resolved: Dict[int, PropertyLayer] = {}

    def load(self, path: Path, included_from: Optional[str] = None) -> int:
        key = str(path)
        if key in self.index:
            return self.index[key]
        if not path.is_file():
            raise MissingIncludeError(key, included_from)
        self.layers.append(PropertyLayer.load(path))
        self.paths.append(key)
        self.index[key] = len(self.layers) - 1
        return self.index[key]


class ConfigResolver:
    """Resolves property files and their ``include`` chains.

    Relative paths (entry files and include targets alike) are resolved against
    ``root``. Nothing is cached between calls, so resolving the same entry file
    twice re-reads it and yields the same pairs when the files are unchanged.
    """

    def __init__(self, root: Union[str, Path] = ".", plugins: Optional[Plugins] = None):
        self.root = Path(root)
        self.plugins = plugins or default_plugins()

    def locate(self, name: str) -> Path:
        path = Path(name.strip())
        if not path.is_absolute():
            path = self.root / path
        return path.resolve()

    def resolve(self, entry_file: Union[str, Path]) -> PropertyLayer:
        arena = _LayerArena()
        entry = arena.load(self.locate(str(entry_file)))
        layer = self._resolve_index(arena, entry, [], set())
        log.debug(f"Resolved {arena.paths[entry]} from {len(arena.layers)} file(s), {len(layer)} key(s)")
        return layer

    def _resolve_index(self, arena: _LayerArena, idx: int, active: List[int], on_path: Set[int]) -> PropertyLayer:
        if idx in on_path:
            start = active.index(idx)
            cycle = [arena.paths[i] for i in active[start:]] + [arena.paths[idx]]
            raise CyclicIncludeError(cycle)
        if idx in arena.resolved:
            return arena.resolved[idx]

        active.append(idx)
        on_path.add(idx)
        raw = arena.layers[idx]
        effective = PropertyLayer(source=raw.source)
        for name in raw.get_list(keys.INCLUDE):
            child = arena.load(self.locate(name), included_from=arena.paths[idx])
            effective = merge(effective, self._resolve_index(arena, child, active, on_path))
        effective = merge(effective, raw.without(keys.INCLUDE))
        on_path.discard(idx)
        active.pop()

        arena.resolved[idx] = effective
        return effective

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------
    @staticmethod
    def tables_to_ingest(global_layer: PropertyLayer) -> List[str]:
        return global_layer.get_list(keys.TABLES_TO_INGEST)

    def table_config_file(self, table_id: str, global_layer: PropertyLayer) -> str:
        database, table = split_table_id(table_id)
        config_key = keys.table_config_key(database, table)
        config_file = global_layer.get_str(config_key)
        if config_file:
            return config_file
        folder = global_layer.get_str(keys.CONFIG_FOLDER)
        if folder:
            return str(Path(folder) / keys.DEFAULT_TABLE_CONFIG_NAME.format(database=database, table=table))
        raise InvalidTableConfigError(table_id, [config_key], "no per-table config file")

    def resolve_table(self, table_id: str, global_layer: PropertyLayer) -> TableIngestionSpec:
        """Layer the table's own config file over ``global_layer`` and validate it."""
        config_file = self.table_config_file(table_id, global_layer)
        try:
            table_layer = self.resolve(config_file)
        except TableConfigError as exc:
            raise exc.for_table(table_id)

        shared = global_layer.without(keys.INCLUDE).without_prefix(keys.INGESTION_PREFIX)
        effective = merge(shared, table_layer)
        return self.build_spec(table_id, effective, global_layer, str(self.locate(config_file)))

    def build_spec(
        self,
        table_id: str,
        layer: PropertyLayer,
        global_layer: Optional[PropertyLayer] = None,
        config_file: Optional[str] = None,
    ) -> TableIngestionSpec:
        database, table = split_table_id(table_id)
        global_layer = global_layer or PropertyLayer()
        problems: List[str] = []

        def integer(key: str, default: int) -> int:
            try:
                value = layer.get_int(key, default)
            except ValueError:
                problems.append(key)
                return default
            if value < 0:
                problems.append(key)
            return value

        def boolean(key: str, default: bool) -> bool:
            try:
                return layer.get_bool(key, default)
            except ValueError:
                problems.append(key)
                return default

        def choice(key: str, default: str, allowed: Tuple[str, ...]) -> str:
            value = (layer.get_str(key) or default).lower()
            if value not in allowed:
                problems.append(key)
                return default
            return value

        def plugin(key: str, default: Optional[str], registry) -> str:
            value = layer.get_str(key) or default
            if value is None:
                problems.append(key)
                return ""
            if value not in registry:
                problems.append(key)
            return value.lower()

        source_type = plugin(keys.SOURCE_TYPE, None, self.plugins.sources)
        keygen_type = plugin(keys.KEYGEN_TYPE, None, self.plugins.key_generators)
        schema_type = plugin(keys.SCHEMA_PROVIDER_TYPE, keys.DEFAULT_SCHEMA_PROVIDER, self.plugins.schema_providers)
        extractor = plugin(
            keys.CATALOG_PARTITION_EXTRACTOR, keys.DEFAULT_PARTITION_EXTRACTOR, self.plugins.partition_extractors
        )

        record_key_fields = layer.get_list(keys.RECORDKEY_FIELDS)
        partition_fields = layer.get_list(keys.PARTITIONPATH_FIELDS)
        hive_style = boolean(keys.HIVE_STYLE_PARTITIONING, False)
        if not record_key_fields:
            problems.append(keys.RECORDKEY_FIELDS)
        if keygen_type and keygen_type != "nonpartitioned" and not partition_fields:
            problems.append(keys.PARTITIONPATH_FIELDS)
        elif keygen_type in self.plugins.key_generators and record_key_fields:
            try:
                self.plugins.key_generators.create(keygen_type, record_key_fields, partition_fields, hive_style, layer)
            except ValueError as exc:
                log.warning(f"[{table_id}] key generator {keygen_type!r} rejected its configuration: {exc}")
                problems.append(keys.KEYGEN_TYPE)

        target_base_path = layer.get_str(keys.TARGET_BASE_PATH)
        if not target_base_path:
            prefix = global_layer.get_str(keys.TARGET_BASE_PATH_PREFIX)
            target_base_path = f"{prefix.rstrip('/')}/{database}/{table}" if prefix else ""

        catalog_enabled = boolean(keys.CATALOG_ENABLED, True)
        catalog_fields = layer.get_list(keys.CATALOG_PARTITION_FIELDS) or partition_fields

        for key in (keys.SOURCE_LOCATION, keys.SOURCE_SCHEMA_FILE):
            if not layer.get_str(key):
                problems.append(key)
        if not target_base_path:
            problems.append(keys.TARGET_BASE_PATH)
        if catalog_enabled and not layer.get_str(keys.CATALOG_DATABASE):
            problems.append(keys.CATALOG_DATABASE)

        if problems:
            raise InvalidTableConfigError(table_id, problems)

        try:
            spec = TableIngestionSpec(
                table_id=table_id,
                database=database,
                table=table,
                source=SourceConfig(
                    type=source_type,
                    location=layer.get_str(keys.SOURCE_LOCATION, ""),
                    topic=layer.get_str(keys.SOURCE_TOPIC, table_id),
                    max_records=integer(keys.SOURCE_MAX_RECORDS, keys.DEFAULT_MAX_RECORDS),
                    offset_reset=choice(keys.SOURCE_OFFSET_RESET, "earliest", keys.OFFSET_RESET_VALUES),
                    pull_retries=integer(keys.SOURCE_PULL_RETRIES, keys.DEFAULT_PULL_RETRIES),
                    options=layer.with_prefix(keys.SOURCE_PREFIX, strip=True).to_dict(),
                ),
                schema_provider=SchemaProviderRef(
                    type=schema_type,
                    source_schema=layer.get_str(keys.SOURCE_SCHEMA_FILE, ""),
                    target_schema=layer.get_str(keys.TARGET_SCHEMA_FILE),
                ),
                key_generator=KeyGeneratorRef(
                    type=keygen_type,
                    record_key_fields=record_key_fields,
                    partition_fields=partition_fields,
                    hive_style=hive_style,
                ),
                target_base_path=target_base_path,
                error_policy=choice(keys.TRANSFORM_ERROR_POLICY, "strict", keys.ERROR_POLICIES),
                catalog=CatalogTarget(
                    enabled=catalog_enabled,
                    database=layer.get_str(keys.CATALOG_DATABASE),
                    table=layer.get_str(keys.CATALOG_TABLE, table),
                    partition_fields=catalog_fields,
                    partition_extractor=extractor,
                    retries=integer(keys.CATALOG_RETRIES, 0),
                ),
                config_file=config_file,
                config_root=str(self.root),
                properties=layer.to_dict(),
            )
        except ValidationError as exc:
            fields = [".".join(str(part) for part in err["loc"]) for err in exc.errors()]
            raise InvalidTableConfigError(table_id, fields) from exc

        missing = spec.missing_fields()
        if problems or missing:
            raise InvalidTableConfigError(table_id, problems + missing)
        return spec


def split_table_id(table_id: str) -> Tuple[str, str]:
    parts = table_id.strip().split(".")
    if len(parts) != 2 or not all(parts):
        raise InvalidTableConfigError(table_id, ["table_id"], "table identifier must be <database>.<table>")
    return parts[0], parts[1]
