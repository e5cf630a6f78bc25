"""Include-chain resolution and per-table spec tests"""

import pytest

from conftest import global_layer_for, write_props
from tablestreamer.core.errors import (
    CyclicIncludeError,
    InvalidTableConfigError,
    MissingIncludeError,
    TableConfigError,
)
from tablestreamer.resolution.layer import PropertyLayer
from tablestreamer.resolution.resolver import ConfigResolver


class TestIncludeChain:
    """ConfigResolver.resolve"""

    @pytest.fixture
    def resolver(self, tmp_path):
        return ConfigResolver(tmp_path)

    def test_entry_overrides_include(self, tmp_path, resolver):
        write_props(tmp_path / "base.properties", {"a": "1", "b": "2"})
        write_props(tmp_path / "entry.properties", {"include": "base.properties", "b": "3"})

        layer = resolver.resolve("entry.properties")
        assert layer == {"a": "1", "b": "3"}
        assert "include" not in layer

    def test_later_include_overrides_earlier(self, tmp_path, resolver):
        write_props(tmp_path / "one.properties", {"x": "one", "only.one": "1"})
        write_props(tmp_path / "two.properties", {"x": "two"})
        write_props(tmp_path / "entry.properties", {"include": "one.properties, two.properties"})

        assert resolver.resolve("entry.properties") == {"x": "two", "only.one": "1"}

    def test_nested_chain(self, tmp_path, resolver):
        write_props(tmp_path / "a.properties", {"depth": "a", "from.a": "yes"})
        write_props(tmp_path / "b.properties", {"include": "a.properties", "depth": "b"})
        write_props(tmp_path / "c.properties", {"include": "b.properties", "from.c": "yes"})

        assert resolver.resolve("c.properties") == {"depth": "b", "from.a": "yes", "from.c": "yes"}

    def test_diamond_is_not_a_cycle(self, tmp_path, resolver):
        write_props(tmp_path / "common.properties", {"shared": "1"})
        write_props(tmp_path / "left.properties", {"include": "common.properties", "left": "1"})
        write_props(tmp_path / "right.properties", {"include": "common.properties", "right": "1"})
        write_props(tmp_path / "top.properties", {"include": "left.properties,right.properties"})

        assert resolver.resolve("top.properties") == {"shared": "1", "left": "1", "right": "1"}

    def test_absolute_include(self, tmp_path):
        elsewhere = write_props(tmp_path / "elsewhere" / "abs.properties", {"k": "v"})
        root = tmp_path / "root"
        write_props(root / "entry.properties", {"include": str(elsewhere)})

        assert ConfigResolver(root).resolve("entry.properties") == {"k": "v"}

    def test_relative_includes_resolve_against_root(self, tmp_path, resolver):
        write_props(tmp_path / "base.properties", {"k": "root"})
        write_props(tmp_path / "tables" / "t.properties", {"include": "base.properties"})

        assert resolver.resolve("tables/t.properties") == {"k": "root"}

    def test_resolution_is_deterministic(self, tmp_path, resolver):
        write_props(tmp_path / "base.properties", {"z": "1", "a": "2"})
        write_props(tmp_path / "entry.properties", {"include": "base.properties", "m": "3"})

        first = resolver.resolve("entry.properties")
        second = resolver.resolve("entry.properties")
        assert first == second
        assert first.dumps() == second.dumps()

    def test_source_files_untouched(self, tmp_path, resolver):
        base = write_props(tmp_path / "base.properties", {"a": "1"})
        entry = write_props(tmp_path / "entry.properties", {"include": "base.properties", "a": "2"})
        before = (base.read_bytes(), entry.read_bytes())

        resolver.resolve("entry.properties")
        assert (base.read_bytes(), entry.read_bytes()) == before

    def test_self_include_is_cyclic(self, tmp_path, resolver):
        write_props(tmp_path / "self.properties", {"include": "self.properties"})

        with pytest.raises(CyclicIncludeError) as excinfo:
            resolver.resolve("self.properties")
        assert any(path.endswith("self.properties") for path in excinfo.value.cycle)
        assert "self.properties" in str(excinfo.value)

    def test_mutual_include_is_cyclic(self, tmp_path, resolver):
        write_props(tmp_path / "a.properties", {"include": "b.properties"})
        write_props(tmp_path / "b.properties", {"include": "a.properties"})

        with pytest.raises(CyclicIncludeError) as excinfo:
            resolver.resolve("a.properties")
        names = [path.rsplit("/", 1)[-1] for path in excinfo.value.cycle]
        assert names == ["a.properties", "b.properties", "a.properties"]

    def test_missing_include(self, tmp_path, resolver):
        write_props(tmp_path / "entry.properties", {"include": "missing.properties"})

        with pytest.raises(MissingIncludeError) as excinfo:
            resolver.resolve("entry.properties")
        assert excinfo.value.path.endswith("missing.properties")
        assert excinfo.value.included_from.endswith("entry.properties")

    def test_missing_entry_file(self, resolver):
        with pytest.raises(MissingIncludeError):
            resolver.resolve("nope.properties")


class TestResolveTable:
    """ConfigResolver.resolve_table"""

    def test_valid_table(self, context, make_table):
        table = make_table("db1.t1")
        spec = context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))

        assert spec.table_id == "db1.t1"
        assert spec.checkpoint_key == "db1.t1"
        assert (spec.database, spec.table) == ("db1", "t1")
        assert spec.source.type == "jsonl"
        assert spec.source.location == str(table.source_dir)
        assert spec.source.max_records == 500
        assert spec.key_generator.record_key_fields == ["_row_key"]
        assert spec.key_generator.partition_fields == ["datestr"]
        assert spec.config_file == str(table.config_file.resolve())

    def test_derived_defaults(self, context, make_table):
        make_table("db1.t1")
        spec = context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))

        assert spec.source.topic == "db1.t1"
        assert spec.source.offset_reset == "earliest"
        assert spec.schema_provider.type == "file"
        assert spec.schema_provider.target_schema is None
        assert spec.catalog.enabled is True
        assert spec.catalog.database == "testdb"
        assert spec.catalog.table == "t1"
        assert spec.catalog.partition_fields == ["datestr"]
        assert spec.error_policy == "strict"

    def test_table_file_overrides_global(self, context, make_table):
        make_table("db1.t1", source__maxRecords="50")
        global_layer = global_layer_for("db1.t1", **{"source.maxRecords": "100", "shared.key": "g"})

        spec = context.resolver.resolve_table("db1.t1", global_layer)
        assert spec.source.max_records == 50
        assert spec.properties["shared.key"] == "g"

    def test_scheduling_keys_do_not_leak(self, context, make_table):
        make_table("db1.t1")
        spec = context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))

        assert not any(key.startswith("ingestion.") for key in spec.properties)
        assert "include" not in spec.properties

    def test_target_base_path_from_prefix(self, context, make_table):
        make_table("db1.t1", write__target__base__path=None)
        global_layer = global_layer_for("db1.t1", **{"ingestion.targetBasePathPrefix": "/data/lake/"})

        spec = context.resolver.resolve_table("db1.t1", global_layer)
        assert spec.target_base_path == "/data/lake/db1/t1"

    def test_config_folder_fallback(self, context, config_root):
        write_props(
            config_root / "tables" / "db9_t9_config.properties",
            {
                "include": "base.properties",
                "source.location": "/tmp/db9",
                "write.target.base.path": "/tmp/lake/db9/t9",
            },
        )
        global_layer = PropertyLayer({"ingestion.configFolder": "tables"})

        spec = context.resolver.resolve_table("db9.t9", global_layer)
        assert spec.source.location == "/tmp/db9"

    def test_no_config_file(self, context):
        with pytest.raises(InvalidTableConfigError) as excinfo:
            context.resolver.resolve_table("db1.t1", PropertyLayer())
        assert excinfo.value.table_id == "db1.t1"
        assert excinfo.value.fields == ["ingestion.db1.t1.configFile"]

    def test_missing_required_fields_reported_together(self, context, make_table):
        make_table("db1.t1", source__location=None, write__recordkey__field="")

        with pytest.raises(InvalidTableConfigError) as excinfo:
            context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))
        assert excinfo.value.table_id == "db1.t1"
        assert "source.location" in excinfo.value.fields
        assert "write.recordkey.field" in excinfo.value.fields

    def test_unknown_plugin_identifiers(self, context, make_table):
        make_table("db1.t1", write__keygenerator__type="invalid", source__type="kafka-ish")

        with pytest.raises(InvalidTableConfigError) as excinfo:
            context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))
        assert "write.keygenerator.type" in excinfo.value.fields
        assert "source.type" in excinfo.value.fields

    def test_keygen_arity_checked_at_resolution(self, context, make_table):
        make_table("db1.t1", write__recordkey__field="_row_key,rider")

        with pytest.raises(InvalidTableConfigError) as excinfo:
            context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))
        assert excinfo.value.fields == ["write.keygenerator.type"]

    def test_nonpartitioned_needs_no_partition_field(self, context, make_table):
        make_table(
            "db1.t1",
            write__keygenerator__type="nonpartitioned",
            write__partitionpath__field="",
            catalog_sync__partition_extractor="non_partitioned",
        )
        spec = context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))
        assert spec.key_generator.partition_fields == []

    def test_malformed_values(self, context, make_table):
        make_table("db1.t1", source__maxRecords="lots", source__offsetReset="sometimes")

        with pytest.raises(InvalidTableConfigError) as excinfo:
            context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))
        assert set(excinfo.value.fields) == {"source.maxRecords", "source.offsetReset"}

    def test_catalog_database_required_only_when_enabled(self, context, make_table):
        make_table("db1.t1", catalog_sync__database="", catalog_sync__enabled="false")
        spec = context.resolver.resolve_table("db1.t1", global_layer_for("db1.t1"))
        assert spec.catalog.enabled is False

    def test_missing_include_is_table_scoped(self, context, make_table):
        make_table("db2.t2", include="base.properties,missing.properties")

        with pytest.raises(MissingIncludeError) as excinfo:
            context.resolver.resolve_table("db2.t2", global_layer_for("db2.t2"))
        assert excinfo.value.table_id == "db2.t2"
        assert isinstance(excinfo.value, TableConfigError)

    @pytest.mark.parametrize("table_id", ["nodot", "a.b.c", ".t1", "db1."])
    def test_malformed_table_id(self, context, table_id):
        with pytest.raises(InvalidTableConfigError):
            context.resolver.resolve_table(table_id, PropertyLayer())

    def test_tables_to_ingest(self):
        layer = PropertyLayer({"ingestion.tablesToBeIngested": "short_trip_db.dummy_table_short_trip, uber_db.dummy_table_uber"})
        assert ConfigResolver.tables_to_ingest(layer) == [
            "short_trip_db.dummy_table_short_trip",
            "uber_db.dummy_table_uber",
        ]
