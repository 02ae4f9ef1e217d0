"""
Tests for database configuration and connection setup errors.
"""
import os
import unittest
from unittest.mock import patch

from material_planning.db.connection import DatabaseConfig, DatabaseConnection
from material_planning.exceptions import ConfigError


class TestDatabaseConfig(unittest.TestCase):
    @patch.dict(os.environ, {'SUPABASE_URL': 'https://example.supabase.co', 'SUPABASE_KEY': 'service-key'})
    def test_environment_wins_for_supabase(self):
        self.assertEqual(DatabaseConfig.get_supabase_config(), {
            'url': 'https://example.supabase.co',
            'key': 'service-key'
        })

    @patch('material_planning.db.connection.config')
    def test_db_type_strips_inline_comments(self, mock_config):
        mock_config.get.return_value = 'SQLite  # local runs'
        self.assertEqual(DatabaseConfig.get_db_type(), 'sqlite')


class TestConnectionSetup(unittest.TestCase):
    def setUp(self):
        self.connection = DatabaseConnection()

    @patch.object(DatabaseConfig, 'get_db_type', return_value='oracle')
    def test_unknown_database_type(self, _):
        with self.assertRaises(ConfigError) as context:
            self.connection._initialize_connection()

        self.assertEqual(context.exception.details, {'type': 'oracle'})

    @patch('material_planning.db.connection.create_client')
    @patch.object(DatabaseConfig, 'get_supabase_config', return_value={'url': '', 'key': ''})
    @patch.object(DatabaseConfig, 'get_db_type', return_value='supabase')
    def test_supabase_requires_credentials(self, _, __, create_client):
        with self.assertRaises(ConfigError):
            self.connection._initialize_connection()

        create_client.assert_not_called()


if __name__ == '__main__':
    unittest.main()
