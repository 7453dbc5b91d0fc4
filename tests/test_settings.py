"""
Tests for environment-driven configuration.
"""

from config.settings import ConfigManager, SchemaPortConfig, get_config, default_options, configure_logging


class TestSchemaPortConfig:

    def test_defaults(self):
        config = get_config()
        assert config.profile == 'dev'
        assert config.log_level == 'INFO'
        assert config.default_schema == 'public'
        assert config.with_rls is False
        assert config.port == 8000
        assert config.max_script_bytes == 1_048_576

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv('SCHEMAPORT_DEFAULT_SCHEMA', 'app')
        monkeypatch.setenv('SCHEMAPORT_WITH_RLS', 'yes')
        monkeypatch.setenv('SCHEMAPORT_PORT', '9100')
        monkeypatch.setenv('SCHEMAPORT_LOG_LEVEL', 'debug')

        config = SchemaPortConfig()

        assert config.default_schema == 'app'
        assert config.with_rls is True
        assert config.port == 9100
        assert config.log_level == 'DEBUG'

    def test_non_integer_port_is_ignored(self, monkeypatch):
        monkeypatch.setenv('SCHEMAPORT_PORT', 'eighty')
        assert SchemaPortConfig().port == 8000

    def test_prod_profile(self, monkeypatch):
        monkeypatch.setenv('SCHEMAPORT_PROFILE', 'prod')
        monkeypatch.setenv('SCHEMAPORT_LOG_LEVEL', 'DEBUG')
        assert SchemaPortConfig().log_level == 'WARNING'

    def test_safe_dict(self, tmp_path):
        data = get_config().get_safe_dict()
        assert data['base_dir'] == str(tmp_path)
        assert set(data) == {'base_dir', 'profile', 'log_level', 'default_schema', 'with_rls',
                             'host', 'port', 'max_script_bytes'}


class TestConfigManager:

    def test_singleton(self):
        assert ConfigManager() is ConfigManager()
        assert get_config() is get_config()

    def test_env_file(self, tmp_path, monkeypatch):
        (tmp_path / '.env').write_text(
            "# local overrides\nSCHEMAPORT_DEFAULT_SCHEMA='tenant'\nSCHEMAPORT_PORT=7000\n"
        )
        monkeypatch.delenv('SCHEMAPORT_DEFAULT_SCHEMA', raising=False)
        monkeypatch.delenv('SCHEMAPORT_PORT', raising=False)
        ConfigManager.reset()

        config = get_config()

        assert config.default_schema == 'tenant'
        assert config.port == 7000

    def test_exported_variables_win_over_env_file(self, tmp_path, monkeypatch):
        (tmp_path / '.env').write_text("SCHEMAPORT_DEFAULT_SCHEMA=from_file\n")
        monkeypatch.setenv('SCHEMAPORT_DEFAULT_SCHEMA', 'from_env')
        ConfigManager.reset()

        assert get_config().default_schema == 'from_env'

    def test_reset_rereads_environment(self, monkeypatch):
        assert get_config().default_schema == 'public'
        monkeypatch.setenv('SCHEMAPORT_DEFAULT_SCHEMA', 'other')
        assert get_config().default_schema == 'public'

        ConfigManager.reset()

        assert get_config().default_schema == 'other'


class TestDefaultOptions:

    def test_seeded_from_config(self, monkeypatch):
        monkeypatch.setenv('SCHEMAPORT_DEFAULT_SCHEMA', 'app')
        monkeypatch.setenv('SCHEMAPORT_WITH_RLS', 'true')
        ConfigManager.reset()

        options = default_options()

        assert options.schema == 'app'
        assert options.with_rls is True
        assert options.include_comments is True

    def test_configure_logging_tolerates_unknown_level(self):
        configure_logging('verbose')
        configure_logging('debug')
