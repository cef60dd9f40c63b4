"""Tests for the command-line interface."""

import json
import tempfile
import unittest
from pathlib import Path

from click.testing import CliRunner

from swiftshare.cli import ConsoleNotifier, cli, console
from swiftshare.notify import Notice, NoticeLevel


class TestCli(unittest.TestCase):

    def setUp(self):
        self.runner = CliRunner()

    def test_config_shows_overrides(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'config.json'
            path.write_text(json.dumps({'port': 4321}))

            result = self.runner.invoke(
                cli, ['--config', str(path), '--device-name', 'Tablet', 'config'], obj={}
            )

        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('4321', result.output)
        self.assertIn('Tablet', result.output)

    def test_config_example(self):
        result = self.runner.invoke(cli, ['config', '--example'], obj={})
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('"port": 4000', result.output)

    def test_send_requires_existing_file(self):
        result = self.runner.invoke(cli, ['send', '127.0.0.1', '4000', '/nonexistent/a.txt'],
                                    obj={})
        self.assertNotEqual(result.exit_code, 0)


class TestConsoleNotifier(unittest.TestCase):

    def save_error(self):
        async def retry():
            return True
        return Notice(NoticeLevel.ERROR, 'Save Error', 'Disk full', file_id='f1', retry=retry)

    def test_no_retry_hint_without_api(self):
        notifier = ConsoleNotifier()
        with console.capture() as capture:
            notifier.notify(self.save_error())

        self.assertIn('Disk full', capture.get())
        self.assertNotIn('/retry', capture.get())
        self.assertEqual(len(notifier.notices), 1)

    def test_retry_hint_names_api_endpoint(self):
        notifier = ConsoleNotifier('http://localhost:8080')
        with console.capture() as capture:
            notifier.notify(self.save_error())

        self.assertIn('http://localhost:8080/files/received/f1/retry', capture.get())


if __name__ == "__main__":
    unittest.main()
