"""
Tests for ConfigManager and typed configuration views
"""

import pytest
import yaml

from fuelex.config import BatchConfig, ConfigManager, ValidationRules
from fuelex.exceptions import ConfigurationError


class TestConfigManager:
    """Defaults, overrides and dot notation"""

    def test_defaults(self):
        config = ConfigManager()

        assert config.get('batch.window_size') == 2
        assert config.get('normalizer.max_image_width') == 1200
        assert config.get('extraction.model') == 'google/gemini-2.5-flash'
        assert config.get('missing.key', 'fallback') == 'fallback'

    def test_overrides_are_deep_merged(self):
        config = ConfigManager({'validation': {'max_litres': 200.0}})

        assert config.get('validation.max_litres') == 200.0
        assert config.get('validation.min_litres') == 1.0

    def test_set_with_dot_notation(self):
        config = ConfigManager()
        config.set('reconciliation.litres_tolerance', 1.0)

        assert config.reconciliation().litres_tolerance == 1.0

    def test_load_from_file(self, tmp_path):
        path = tmp_path / 'fuelex.yaml'
        path.write_text(yaml.safe_dump({'batch': {'window_size': 4}}))

        config = ConfigManager.load(path, use_user_config=False)

        assert config.batch().window_size == 4
        assert config.batch().extraction_timeout == 120.0

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            ConfigManager.load(tmp_path / 'nope.yaml', use_user_config=False)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / 'list.yaml'
        path.write_text('- 1\n- 2\n')

        with pytest.raises(ConfigurationError):
            ConfigManager.load(path, use_user_config=False)

    def test_to_dict_is_a_copy(self):
        config = ConfigManager()
        snapshot = config.to_dict()
        snapshot['batch']['window_size'] = 99

        assert config.get('batch.window_size') == 2


class TestTypedViews:
    """Bad values fail loudly"""

    def test_validation_rules(self):
        rules = ConfigManager().validation()

        assert isinstance(rules, ValidationRules)
        assert rules.min_cost_per_litre == 1.10
        assert rules.max_lookback_days == 730

    def test_inverted_band(self):
        config = ConfigManager({'validation': {'min_litres': 200.0}})

        with pytest.raises(ConfigurationError):
            config.validation()

    def test_bad_window_size(self):
        config = ConfigManager({'batch': {'window_size': 0}})

        with pytest.raises(ConfigurationError):
            config.batch()

    def test_unknown_batch_key(self):
        config = ConfigManager({'batch': {'windows': 3}})

        with pytest.raises(ConfigurationError):
            config.batch()

    def test_batch_config_dataclass(self):
        assert BatchConfig().retry_delay_base == 5.0
        with pytest.raises(ValueError):
            BatchConfig(extraction_timeout=0)

    @pytest.mark.parametrize('value', [2.5, '3', True])
    def test_window_size_must_be_an_integer(self, value):
        with pytest.raises(ValueError):
            BatchConfig(window_size=value)
        with pytest.raises(ConfigurationError):
            ConfigManager({'batch': {'window_size': value}}).batch()

    def test_delay_must_be_a_number(self):
        with pytest.raises(ConfigurationError):
            ConfigManager({'batch': {'window_delay': '2s'}}).batch()

    def test_integer_delays_become_floats(self):
        config = ConfigManager({'batch': {'window_delay': 2, 'extraction_timeout': 60}}).batch()

        assert config.window_delay == 2.0
        assert isinstance(config.extraction_timeout, float)

    def test_logging(self):
        config = ConfigManager({'logging': {'level': 'debug'}})

        assert config.log_level() == 'DEBUG'
        assert '%(levelname)s' in config.log_format()
