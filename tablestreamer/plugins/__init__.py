"""Pluggable components selected by identifier in table configuration."""

from dataclasses import dataclass, field

from tablestreamer.plugins.registry import Registry


@dataclass
class Plugins:
    sources: Registry = field(default_factory=lambda: Registry("source connector"))
    key_generators: Registry = field(default_factory=lambda: Registry("key generator"))
    schema_providers: Registry = field(default_factory=lambda: Registry("schema provider"))
    partition_extractors: Registry = field(default_factory=lambda: Registry("partition value extractor"))


def default_plugins() -> Plugins:
    """A fresh bundle with every built-in component registered."""
    from tablestreamer.ingestion import file_source, http_source
    from tablestreamer.plugins import keygen, partition_extractor, schema_provider

    plugins = Plugins()
    file_source.register_defaults(plugins.sources)
    http_source.register_defaults(plugins.sources)
    keygen.register_defaults(plugins.key_generators)
    schema_provider.register_defaults(plugins.schema_providers)
    partition_extractor.register_defaults(plugins.partition_extractors)
    return plugins


__all__ = ["Plugins", "Registry", "default_plugins"]
