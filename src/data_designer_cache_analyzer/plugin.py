from data_designer.plugins.plugin import Plugin, PluginType

cache_analyzer_plugin = Plugin(
    config_qualified_name="data_designer_cache_analyzer.config.CacheAnalyzerColumnConfig",
    impl_qualified_name="data_designer_cache_analyzer.generator.CacheAnalyzerColumnGenerator",
    plugin_type=PluginType.COLUMN_GENERATOR,
)
