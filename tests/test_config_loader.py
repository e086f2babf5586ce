#!/usr/bin/env -S python3 -B -u
"""
Test Suite for Firewall Configuration Loading

Tests defaults, YAML merging, environment overrides and error reporting
for invalid configuration files.
"""

import os
import shutil
import sys
import tempfile
import unittest
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.config_loader import DEFAULT_RULE_PREFIX, FirewallConfig, load_firewall_config
from src.core.exceptions import ConfigurationError, ErrorCode


ENV_KEYS = ('IPBAN_FIREWALL_CONF', 'IPBAN_RULE_PREFIX', 'IPBAN_DATA_DIR',
            'IPBAN_CHAIN', 'IPBAN_COMMAND_TIMEOUT')


class TestFirewallConfig(unittest.TestCase):
    """Test FirewallConfig with explicit files."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix='ipban_config_')
        self.env = patch.dict(os.environ, {})
        self.env.start()
        for key in ENV_KEYS:
            os.environ.pop(key, None)

    def tearDown(self):
        self.env.stop()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def write(self, content, name='ipban_firewall.yaml'):
        path = os.path.join(self.temp_dir, name)
        with open(path, 'w') as f:
            f.write(content)
        return path

    def test_01_defaults(self):
        """Test values of an empty configuration file."""
        config = FirewallConfig(self.write(""))
        self.assertEqual(config.rule_prefix, DEFAULT_RULE_PREFIX)
        self.assertEqual(config.data_directory, '/var/lib/ipban')
        self.assertEqual(config.chain, 'INPUT')
        self.assertEqual(config.block_max_count, 2097152)
        self.assertEqual(config.allow_max_count, 65536)
        self.assertEqual(config.block_ranges_max_count, 4194304)
        self.assertEqual(config.hash_size, 1024)
        self.assertEqual(config.command_timeout, 60.0)
        self.assertEqual(config.table_file, 'ipban.tbl')
        self.assertEqual(config.set_suffix, '.set')
        self.assertEqual(config.delete_retry_attempts, 10)
        self.assertAlmostEqual(config.delete_retry_delay, 0.02)

    def test_02_yaml_merge(self):
        """Test that nested keys merge without dropping siblings."""
        path = self.write(
            "firewall:\n"
            "  rule_prefix: Guard_\n"
            "  max_elements:\n"
            "    block: 1000\n"
            "  commands:\n"
            "    timeout: 0\n"
            "other:\n"
            "  ignored: true\n"
        )
        config = FirewallConfig(path)
        self.assertEqual(config.rule_prefix, 'Guard_')
        self.assertEqual(config.block_max_count, 1000)
        self.assertEqual(config.allow_max_count, 65536)
        self.assertIsNone(config.command_timeout)
        self.assertEqual(config.shell, '/bin/bash')
        self.assertIsNone(config.get('other.ignored'))

    def test_03_environment_overrides(self):
        """Test that environment variables win over the file."""
        path = self.write("firewall:\n  rule_prefix: File_\n  chain: INPUT\n")
        os.environ['IPBAN_RULE_PREFIX'] = 'Env_'
        os.environ['IPBAN_COMMAND_TIMEOUT'] = '2.5'
        os.environ['IPBAN_CHAIN'] = 'IPBAN'
        config = FirewallConfig(path)
        self.assertEqual(config.rule_prefix, 'Env_')
        self.assertEqual(config.command_timeout, 2.5)
        self.assertEqual(config.chain, 'IPBAN')

    def test_04_invalid_env_value_ignored(self):
        """Test that an unparseable timeout keeps the default."""
        os.environ['IPBAN_COMMAND_TIMEOUT'] = 'soon'
        config = FirewallConfig(self.write(""))
        self.assertEqual(config.command_timeout, 60.0)

    def test_05_missing_file(self):
        """Test that an explicit missing file is an error."""
        with self.assertRaises(ConfigurationError) as ctx:
            FirewallConfig(os.path.join(self.temp_dir, 'absent.yaml'))
        self.assertEqual(ctx.exception.error_code, ErrorCode.CONFIGURATION_ERROR)

    def test_06_invalid_yaml(self):
        """Test that malformed YAML is an error."""
        with self.assertRaises(ConfigurationError):
            FirewallConfig(self.write("firewall: [unclosed\n"))
        with self.assertRaises(ConfigurationError):
            FirewallConfig(self.write("firewall: 12\n"))
        with self.assertRaises(ConfigurationError):
            FirewallConfig(self.write("- just\n- a list\n"))

    def test_07_dot_notation(self):
        """Test get with dotted keys."""
        config = FirewallConfig(self.write(""))
        self.assertEqual(config.get('files.table_file'), 'ipban.tbl')
        self.assertEqual(config.get('max_elements.allow'), 65536)
        self.assertEqual(config.get('files.missing', 'fallback'), 'fallback')

    def test_08_keyword_overrides(self):
        """Test that load_firewall_config applies non-None overrides last."""
        os.environ['IPBAN_DATA_DIR'] = '/from/env'
        path = self.write("firewall:\n  data_directory: /from/file\n")
        config = load_firewall_config(path, data_directory='/from/cli', rule_prefix=None)
        self.assertEqual(config.data_directory, '/from/cli')
        self.assertEqual(config.rule_prefix, DEFAULT_RULE_PREFIX)

    def test_09_env_config_location(self):
        """Test that IPBAN_FIREWALL_CONF is used when no path is given."""
        os.environ['IPBAN_FIREWALL_CONF'] = self.write("firewall:\n  rule_prefix: Located_\n")
        config = FirewallConfig()
        self.assertEqual(config.rule_prefix, 'Located_')
        self.assertEqual(config.config_path, os.environ['IPBAN_FIREWALL_CONF'])

    def test_10_defaults_not_shared(self):
        """Test that one instance cannot alter another's defaults."""
        first = FirewallConfig(self.write(""))
        first.config['max_elements']['block'] = 1
        second = FirewallConfig(self.write(""))
        self.assertEqual(second.block_max_count, 2097152)


if __name__ == '__main__':
    unittest.main()
