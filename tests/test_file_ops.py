#!/usr/bin/env -S python3 -B -u
"""
Test Suite for File Helpers

Tests the bounded delete retry, file replacement and scoped temporary
files used for set files and chain listings.
"""

import os
import shutil
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.file_ops import RetryPolicy, delete_file, replace_file, scoped_temp_file


FAST = RetryPolicy(attempts=4, delay=0)


class TestDeleteFile(unittest.TestCase):
    """Test delete_file retry behaviour."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix='ipban_files_')
        self.path = Path(self.temp_dir, 'IPBan_0.set')
        self.path.write_text('create IPBan_0 hash:ip\n')

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_01_delete_existing(self):
        """Test plain deletion."""
        self.assertTrue(delete_file(self.path, FAST))
        self.assertFalse(self.path.exists())

    def test_02_missing_is_success(self):
        """Test that a missing file counts as deleted."""
        self.assertTrue(delete_file(Path(self.temp_dir, 'absent'), FAST))

    def test_03_retries_transient_errors(self):
        """Test that a transient error is retried."""
        real_unlink = Path.unlink
        failures = [PermissionError('busy'), PermissionError('busy')]

        def flaky_unlink(path, *args, **kwargs):
            if failures:
                raise failures.pop(0)
            return real_unlink(path, *args, **kwargs)

        with patch.object(Path, 'unlink', flaky_unlink):
            self.assertTrue(delete_file(self.path, FAST))
        self.assertFalse(self.path.exists())

    def test_04_gives_up(self):
        """Test that deletion gives up after the configured attempts."""
        with patch.object(Path, 'unlink', side_effect=PermissionError('busy')) as mock_unlink:
            self.assertFalse(delete_file(self.path, FAST))
        self.assertEqual(mock_unlink.call_count, 4)
        self.assertTrue(self.path.exists())

    @patch('src.core.file_ops.time.sleep')
    def test_05_delay_between_attempts(self, mock_sleep):
        """Test the fixed delay between attempts."""
        with patch.object(Path, 'unlink', side_effect=PermissionError('busy')):
            delete_file(self.path, RetryPolicy(attempts=3, delay=0.02))
        self.assertEqual(mock_sleep.call_count, 2)
        mock_sleep.assert_called_with(0.02)


class TestReplaceAndTempFiles(unittest.TestCase):
    """Test replace_file and scoped_temp_file."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp(prefix='ipban_files_')

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_01_replace_existing_target(self):
        """Test that the source content ends up at the target."""
        source = Path(self.temp_dir, 'IPBan_0.set.tmp')
        target = Path(self.temp_dir, 'IPBan_0.set')
        source.write_text('new\n')
        target.write_text('old\n')

        replace_file(source, target, FAST)

        self.assertEqual(target.read_text(), 'new\n')
        self.assertFalse(source.exists())

    def test_02_scoped_temp_file_removed(self):
        """Test that a generated temp file is removed on exit."""
        with scoped_temp_file(self.temp_dir, policy=FAST) as temp_path:
            self.assertTrue(temp_path.exists())
            temp_path.write_text('listing')
        self.assertFalse(temp_path.exists())

    def test_03_scoped_temp_file_removed_on_error(self):
        """Test cleanup when the block raises."""
        with self.assertRaises(RuntimeError):
            with scoped_temp_file(self.temp_dir, policy=FAST) as temp_path:
                raise RuntimeError('fail')
        self.assertFalse(temp_path.exists())

    def test_04_named_temp_file_truncated(self):
        """Test that a named temp file starts empty."""
        named = Path(self.temp_dir, 'IPBan_0.set.tmp')
        named.write_text('stale content')
        with scoped_temp_file(path=named, policy=FAST) as temp_path:
            self.assertEqual(temp_path, named)
            self.assertEqual(temp_path.read_text(), '')
        self.assertFalse(named.exists())


if __name__ == '__main__':
    unittest.main()
