"""Property keys understood by the resolver and the per-table pipeline."""

INCLUDE = "include"

# Scheduling (global layer only)
INGESTION_PREFIX = "ingestion."
TABLES_TO_INGEST = "ingestion.tablesToBeIngested"
TABLE_CONFIG_FILE = "ingestion.{database}.{table}.configFile"
CONFIG_FOLDER = "ingestion.configFolder"
DEFAULT_TABLE_CONFIG_NAME = "{database}_{table}_config.properties"
TARGET_BASE_PATH_PREFIX = "ingestion.targetBasePathPrefix"

# Source
SOURCE_PREFIX = "source."
SOURCE_TYPE = "source.type"
SOURCE_LOCATION = "source.location"
SOURCE_TOPIC = "source.topic"
SOURCE_MAX_RECORDS = "source.maxRecords"
SOURCE_OFFSET_RESET = "source.offsetReset"
SOURCE_PULL_RETRIES = "source.pull.retries"

DEFAULT_MAX_RECORDS = 5000
DEFAULT_PULL_RETRIES = 2
OFFSET_RESET_VALUES = ("earliest", "latest")

# Schema provider
SCHEMA_PROVIDER_TYPE = "schemaprovider.type"
SOURCE_SCHEMA_FILE = "schemaprovider.source.schema.file"
TARGET_SCHEMA_FILE = "schemaprovider.target.schema.file"
DEFAULT_SCHEMA_PROVIDER = "file"

# Key generation / write
KEYGEN_TYPE = "write.keygenerator.type"
RECORDKEY_FIELDS = "write.recordkey.field"
PARTITIONPATH_FIELDS = "write.partitionpath.field"
HIVE_STYLE_PARTITIONING = "write.partitionpath.hive_style"
TIMEBASED_OUTPUT_DATEFORMAT = "keygen.timebased.output.dateformat"
TARGET_BASE_PATH = "write.target.base.path"
TIMEBASED_TIMESTAMP_TYPE = "keygen.timebased.timestamp.type"
DEFAULT_DATEFORMAT = "yyyy/MM/dd"
TIMESTAMP_TYPES = ("EPOCHMILLISECONDS", "UNIX_TIMESTAMP", "DATE_STRING")

# Transform
TRANSFORM_ERROR_POLICY = "transform.error.policy"
ERROR_POLICIES = ("strict", "skip")

# Catalog sync
CATALOG_ENABLED = "catalog_sync.enabled"
CATALOG_DATABASE = "catalog_sync.database"
CATALOG_TABLE = "catalog_sync.table"
CATALOG_PARTITION_FIELDS = "catalog_sync.partition_fields"
CATALOG_PARTITION_EXTRACTOR = "catalog_sync.partition_extractor"
CATALOG_RETRIES = "catalog_sync.retries"
DEFAULT_PARTITION_EXTRACTOR = "multi_part_keys"


def table_config_key(database: str, table: str) -> str:
    return TABLE_CONFIG_FILE.format(database=database, table=table)
