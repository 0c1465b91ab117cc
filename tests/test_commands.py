import os
import subprocess
from pathlib import Path
from unittest.mock import patch

from cforge.commands import (
    CommandParams,
    Continue,
    FileDirectory,
    HandlePrompt,
    PrintModels,
    Quit,
    SwitchContext,
    SwitchHistory,
    create_command_registry,
    get_editor,
    list_files,
)
from cforge.core.profiles import Tier
from cforge.core.transcript import USER_DELIMITER
from cforge.utils import console

from .test_base import BaseCforgeTest


class TestRegistry(BaseCforgeTest):
    def test_all_commands_registered(self):
        self.assertEqual(
            {c.name for c in self.registry},
            {"q", "list", "switch", "help", "edit", "sysprompt", "context",
             "prompt", "model", "profile", "tools", "clear"},
        )

    def test_file_commands_carry_directory_and_prefix(self):
        self.assertEqual(self.registry.get("switch").file_directory, FileDirectory.DATA)
        self.assertEqual(self.registry.get("switch").default_prefix, "work/")
        self.assertEqual(self.registry.get("context").file_directory, FileDirectory.KNOWLEDGE)
        self.assertEqual(self.registry.get("prompt").file_directory, FileDirectory.PROMPT)
        self.assertIsNone(self.registry.get("list").default_prefix)

    def test_help_order(self):
        names = [c.name for c in create_command_registry().sorted_for_help()]
        self.assertEqual(names[-4:], ["context", "list", "prompt", "switch"])
        self.assertEqual(names[0], "clear")


class TestCommands(BaseCforgeTest):
    def test_unknown_command(self):
        self.assertIsInstance(self.processor.process(":frobnicate now"), Continue)
        self.assertIn("Unknown command: frobnicate", self.printed())

    def test_bracketed_input_is_printed_literally(self):
        # Render through the real console instead of the patched print
        self.print_patcher.stop()
        try:
            with console.capture() as capture:
                self.processor.process(":profile [/]")
                self.processor.process(":[/bold]")
                self.processor.process(":tools [red]x")
        finally:
            self.mock_print = self.print_patcher.start()
        output = capture.get()
        self.assertIn("No profile found with name: [/]", output)
        self.assertIn("Unknown command: [/bold]", output)
        self.assertIn("Unknown tool: [red]x", output)
        self.assertEqual(self.state.active_profile.name, "work")

    def test_command_name_is_case_insensitive(self):
        self.assertIsInstance(self.processor.process("  :Q  "), Quit)

    def test_quit(self):
        self.assertIsInstance(self.processor.process(":q"), Quit)
        self.assertIn("All interactions saved to 'chat.txt'", self.printed())

    def test_list_with_pattern(self):
        (self.paths.data_dir / "work").mkdir()
        (self.paths.data_dir / "work" / "plan.txt").write_text("", encoding="utf-8")
        (self.paths.data_dir / "other.txt").write_text("", encoding="utf-8")

        self.assertEqual(list_files(self.paths.data_dir), ["chat.txt", "other.txt", "work/plan.txt"])
        self.processor.process(":list plan")
        output = self.printed()
        self.assertIn("work/plan.txt", output)
        self.assertNotIn("other.txt", output)

    def test_switch_history(self):
        self.processor.process(":switch notes/today.txt")
        new_path = self.paths.data_dir / "notes" / "today.txt"
        self.assertTrue(new_path.exists())
        self.assertEqual(self.processor.transcript.path, new_path)
        self.assertEqual(self.store.load().last_history_file, str(new_path))
        self.assertIn("Switched to history file: today.txt", self.printed())

    def test_switch_to_directory_keeps_old_transcript(self):
        (self.paths.data_dir / "adir").mkdir()
        self.processor.process(":switch adir")
        self.assertIs(self.processor.transcript, self.transcript)
        self.assertIn("is a directory", self.printed())

    @patch("cforge.commands.questionary.select")
    def test_switch_interactive(self, mock_select):
        (self.paths.data_dir / "other.txt").write_text("", encoding="utf-8")
        mock_select.return_value.ask.return_value = "other.txt"

        self.processor.process(":switch")

        mock_select.assert_called_once()
        self.assertEqual(mock_select.call_args.kwargs["choices"], ["other.txt"])
        self.assertEqual(self.processor.transcript.filename, "other.txt")

    @patch("cforge.commands.questionary.select")
    def test_switch_interactive_excludes_current_file_in_subdirectory(self, mock_select):
        self.processor.process(":switch notes/today.txt")
        (self.paths.data_dir / "today.txt").write_text("", encoding="utf-8")
        mock_select.return_value.ask.return_value = None

        self.processor.process(":switch")

        self.assertEqual(mock_select.call_args.kwargs["choices"], ["chat.txt", "today.txt"])

    @patch("cforge.commands.questionary.select")
    def test_switch_interactive_cancelled(self, mock_select):
        (self.paths.data_dir / "other.txt").write_text("", encoding="utf-8")
        mock_select.return_value.ask.return_value = None
        self.processor.process(":switch")
        self.assertIs(self.processor.transcript, self.transcript)

    def test_switch_without_candidates(self):
        self.assertIsInstance(self.processor.process(":switch"), Continue)
        self.assertIn("No history file specified", self.printed())

    def test_help_lists_general_before_file_commands(self):
        self.processor.process(":help")
        output = self.printed()
        self.assertLess(output.index("General commands:"), output.index("File commands"))
        self.assertLess(output.index("sysprompt"), output.index("File commands"))
        self.assertIn("(default prefix: work/)", output)
        self.assertIn(":switch <history file>", output)

    @patch("cforge.commands.subprocess.run")
    def test_edit_reloads_on_success(self, mock_run):
        def fake_editor(command):
            self.transcript.path.write_text("edited", encoding="utf-8")
            return subprocess.CompletedProcess(command, 0)

        mock_run.side_effect = fake_editor
        with patch.dict(os.environ, {"EDITOR": "nano -w"}):
            self.processor.process(":edit")
        self.assertEqual(mock_run.call_args.args[0], ["nano", "-w", str(self.transcript.path)])
        self.assertEqual(self.transcript.content, "edited")

    @patch("cforge.commands.subprocess.run", side_effect=FileNotFoundError("nope"))
    def test_edit_failure_is_tolerated(self, _mock_run):
        self.transcript.append_user("keep")
        self.assertIsInstance(self.processor.process(":edit"), Continue)
        self.assertEqual(self.transcript.content, f"{USER_DELIMITER}keep")
        self.assertIn("Error opening file in editor", self.printed())

    @patch("cforge.commands.subprocess.run")
    def test_edit_with_unbalanced_editor_quotes(self, mock_run):
        with patch.dict(os.environ, {"EDITOR": 'vim "unbalanced'}):
            self.assertIsInstance(self.processor.process(":edit"), Continue)
        mock_run.assert_not_called()
        self.assertIn("Error opening file in editor: No closing quotation", self.printed())

    def test_get_editor(self):
        with patch.dict(os.environ, {"EDITOR": "", "VISUAL": "code -w"}):
            self.assertEqual(get_editor(), "code -w")
        with patch.dict(os.environ, {"EDITOR": "", "VISUAL": ""}):
            with patch("cforge.commands.sys.platform", "linux"):
                self.assertEqual(get_editor(), "vi")
            with patch("cforge.commands.sys.platform", "win32"):
                self.assertEqual(get_editor(), "notepad")

    def test_sysprompt(self):
        self.processor.process(":sysprompt Answer in haiku")
        self.assertEqual(self.client.system_prompt(), "Answer in haiku")
        self.processor.process(":sysprompt")
        self.assertIn("Answer in haiku", self.printed())

    def test_context_relative_to_knowledge_dir(self):
        self.processor.process(":context docs/notes.md")
        self.assertEqual(self.state.active_context_path, self.knowledge_dir / "docs" / "notes.md")
        self.processor.process(":context")
        self.assertIsNone(self.state.active_context_path)

    def test_context_outcomes(self):
        handler = self.registry.get("context").handler
        params = self._params([])
        self.assertEqual(handler(params), SwitchContext(None))

    def test_prompt_without_file(self):
        self.assertIsInstance(self.processor.process(":prompt"), Continue)
        self.assertIn("No prompt file specified", self.printed())

    def test_prompt_outcome(self):
        handler = self.registry.get("prompt").handler
        self.assertEqual(handler(self._params(["review.md"])), HandlePrompt(Path("review.md"), None))
        self.assertEqual(
            handler(self._params(["review.md", "this", "code"])),
            HandlePrompt(Path("review.md"), "this code"),
        )

    def test_model_without_argument_prints_models(self):
        self.assertEqual(self.registry.get("model").handler(self._params([])), PrintModels())
        self.processor.process(":model")
        self.assertIn("gpt-4o-mini <- current", self.printed())

    def test_model_invalid(self):
        self.processor.process(":model turbo")
        output = self.printed()
        self.assertIn("Invalid model type 'turbo'", output)
        self.assertIn("o3", output)
        self.assertEqual(self.state.active_model.tier, Tier.FAST)

    def test_model_switch_rebuilds_client(self):
        self.client.set_system_prompt("custom")
        self.processor.process(":model deep")
        self.assertEqual(self.state.active_model.model, "o3")
        self.client_factory.assert_called_once()
        self.assertIsNot(self.processor.client, self.client)
        self.assertEqual(self.processor.client.system_prompt(), "custom")

    def test_model_switch_failure_keeps_client(self):
        self.processor.process(":profile local")
        client = self.processor.client
        self.processor.process(":model deep")
        self.assertIs(self.processor.client, client)
        self.assertEqual(self.client_factory.call_count, 1)

    def test_profile_listing(self):
        self.processor.process(":profile")
        output = self.printed()
        self.assertIn("(openai) <- current", output)
        self.assertIn("(ollama)", output)

    def test_profile_switch_and_unknown(self):
        self.processor.process(":profile local")
        self.assertEqual(self.state.active_profile.name, "local")
        self.processor.process(":profile nope")
        self.assertEqual(self.state.active_profile.name, "local")
        self.assertIn("No profile found with name: nope", self.printed())

    def test_tools_listing(self):
        self.processor.process(":tools")
        output = self.printed()
        self.assertIn("does not support tool calls", output)
        self.assertIn("grep", output)
        self.assertIn("pwd", output)

    def test_tools_run(self):
        self.processor.process(":tools pwd")
        self.assertIn(os.getcwd(), self.printed())
        self.processor.process(":tools rm")
        self.assertIn("Unknown tool: rm", self.printed())

    def test_clear(self):
        self.transcript.append_user("secret")
        self.processor.process(":clear")
        self.assertEqual(self.transcript.content, "")
        self.assertEqual(self.transcript.path.read_text(encoding="utf-8"), "")
        self.assertIn("History cleared: chat.txt", self.printed())

    def test_switch_outcome(self):
        handler = self.registry.get("switch").handler
        self.assertEqual(handler(self._params(["x.txt"])), SwitchHistory("x.txt"))

    def _params(self, args):
        return CommandParams(
            args=args,
            client=self.client,
            transcript=self.transcript,
            data_dir=self.paths.data_dir,
            registry=self.registry,
            knowledge_dir=str(self.knowledge_dir),
        )
