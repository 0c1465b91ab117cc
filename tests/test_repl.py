import os
import tempfile
from pathlib import Path
from unittest.mock import patch

from cforge.cli import ChatCLI, run_cli
from cforge.core.errors import ChatClientError
from cforge.core.transcript import ASSISTANT_DELIMITER, USER_DELIMITER
from cforge.utils import console

from .test_base import BaseCforgeTest, MockChatClient


class TestREPL(BaseCforgeTest):
    def setUp(self):
        super().setUp()
        self.chat_cli = ChatCLI(self.processor)

    @patch.object(console, "input")
    def test_repl_basic_interaction(self, mock_input):
        """A prompt followed by :q records one exchange and exits cleanly"""
        mock_input.side_effect = ["Hello", ":q"]

        self.assertEqual(self.chat_cli.repl(), 0)
        self.assertEqual(
            self.transcript.content, f"{USER_DELIMITER}Hello{ASSISTANT_DELIMITER}Hi there!"
        )

    @patch.object(console, "input")
    def test_repl_with_commands(self, mock_input):
        """Commands and prompts can be mixed; model switches rebuild the client"""
        self.client.replies = ["Hi there!", "I'm doing well!"]
        mock_input.side_effect = ["Hello", ":model balanced", "", "How are you?", ":q"]

        self.assertEqual(self.chat_cli.repl(), 0)
        self.assertEqual(self.state.active_model.model, "gpt-4o")
        self.assertEqual(len(self.client.calls), 1)
        self.assertEqual(len(self.processor.transcript.to_messages()), 4)

    @patch.object(console, "input", side_effect=EOFError)
    def test_eof_ends_session(self, _mock_input):
        self.assertEqual(self.chat_cli.repl(), 0)
        self.assertIn("All interactions saved to 'chat.txt'", self.printed())

    @patch.object(console, "input")
    def test_chat_error_ends_session(self, mock_input):
        mock_input.side_effect = ["Hello", ":q"]
        self.client.replies = [ChatClientError("Request to model 'x' failed: boom")]

        self.assertEqual(self.chat_cli.repl(), 1)
        self.assertIn("failed: boom", self.printed())
        self.assertEqual(mock_input.call_count, 1)

    @patch.object(console, "input")
    def test_interrupted_request_is_not_recorded(self, mock_input):
        mock_input.side_effect = ["Hello", "Again", ":q"]
        self.client.replies = [KeyboardInterrupt(), "Back again"]

        self.assertEqual(self.chat_cli.repl(), 0)
        self.assertIn("Request interrupted", self.printed())
        self.assertEqual(
            self.transcript.content, f"{USER_DELIMITER}Again{ASSISTANT_DELIMITER}Back again"
        )

    def test_token_usage(self):
        self.processor.client = MockChatClient(context_size=100)
        self.transcript.append_user("x" * 100)
        usage = self.chat_cli.token_usage()
        self.assertIn("/ 100 tokens", usage)

        self.assertIsNone(ChatCLI(self.processor, token_estimation=False).token_usage())
        self.processor.client = MockChatClient(context_size=None)
        self.assertIsNone(self.chat_cli.token_usage())


class TestRunCli(BaseCforgeTest):
    def setUp(self):
        super().setUp()
        self.home = tempfile.TemporaryDirectory()
        env = {
            "CFORGE_CONFIG_DIR": os.path.join(self.home.name, "config"),
            "CFORGE_DATA_DIR": os.path.join(self.home.name, "data"),
            "CFORGE_CACHE_DIR": os.path.join(self.home.name, "cache"),
        }
        self.env_patcher = patch.dict(os.environ, env)
        self.env_patcher.start()
        self.logging_patcher = patch("cforge.cli.setup_logging")
        self.logging_patcher.start()
        self.factory_patcher = patch("cforge.cli.build_chat_client", return_value=MockChatClient())
        self.mock_factory = self.factory_patcher.start()

    def tearDown(self):
        self.factory_patcher.stop()
        self.logging_patcher.stop()
        self.env_patcher.stop()
        self.home.cleanup()
        super().tearDown()

    def test_no_history_file_is_fatal(self):
        with self.assertRaises(SystemExit) as ctx:
            run_cli([])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("No history file specified", self.printed())

    @patch.object(ChatCLI, "repl", autospec=True, return_value=0)
    def test_startup_wires_session(self, mock_repl):
        context = Path(self.home.name) / "ctx.md"
        run_cli(["project.txt", "-f", str(context)])

        chat_cli = mock_repl.call_args.args[0]
        processor = chat_cli.processor
        expected = Path(self.home.name) / "data" / "chats" / "project.txt"
        self.assertEqual(processor.transcript.path, expected)
        self.assertTrue(expected.exists())
        self.assertEqual(processor.state.active_context_path, context.resolve())
        self.assertEqual(processor.state.active_profile.name, "local")
        self.assertTrue((Path(self.home.name) / "config" / "cforge.toml").exists())

    @patch.object(ChatCLI, "repl", autospec=True, return_value=0)
    def test_last_history_file_is_remembered(self, mock_repl):
        run_cli(["remember-me.txt"])
        run_cli([])
        self.assertEqual(mock_repl.call_args.args[0].processor.transcript.filename, "remember-me.txt")

    def test_invalid_config_is_fatal(self):
        config = Path(self.home.name) / "config" / "cforge.toml"
        config.parent.mkdir(parents=True)
        config.write_text("profiles = []\n", encoding="utf-8")
        with self.assertRaises(SystemExit) as ctx:
            run_cli(["chat.txt"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("No profiles defined", self.printed())

    @patch.object(ChatCLI, "repl", autospec=True, return_value=1)
    def test_failed_session_exits_non_zero(self, _mock_repl):
        with self.assertRaises(SystemExit) as ctx:
            run_cli(["chat.txt"])
        self.assertEqual(ctx.exception.code, 1)
