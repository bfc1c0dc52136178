import unittest

from consolebridge.core.policy import Blocked, Command, Plain, Restart, Unauthorized, classify

ADMINS = frozenset({1971451950, 42})


class TestClassify(unittest.TestCase):
    def test_outsider_is_unauthorized_whatever_the_text(self) -> None:
        for text in ("!stop", "hello", "!", ""):
            self.assertEqual(classify(7, text, ADMINS), Unauthorized())

    def test_admin_plain_text(self) -> None:
        self.assertEqual(classify(42, "hello there", ADMINS), Plain())
        self.assertEqual(classify(42, " !not-a-command", ADMINS), Plain())

    def test_admin_command_strips_single_prefix(self) -> None:
        self.assertEqual(classify(42, "!say hi", ADMINS), Command("say hi"))
        self.assertEqual(classify(42, "!!double", ADMINS), Command("!double"))
        self.assertEqual(classify(42, "! spaced ", ADMINS), Command(" spaced "))

    def test_bare_prefix_is_empty_command(self) -> None:
        self.assertEqual(classify(42, "!", ADMINS), Command(""))

    def test_sender_match_is_exact(self) -> None:
        self.assertEqual(classify(-42, "!stop", ADMINS), Unauthorized())
        self.assertEqual(classify("42", "!stop", ADMINS), Unauthorized())

    def test_reserved_words_pass_through_without_reserved_mode(self) -> None:
        self.assertEqual(classify(42, "!help", ADMINS), Command("help"))
        self.assertEqual(classify(42, "!restart", ADMINS), Command("restart"))


class TestReservedCommands(unittest.TestCase):
    def test_help_blocked_for_everyone(self) -> None:
        self.assertEqual(classify(42, "!help", ADMINS, reserved=True), Blocked("help"))
        self.assertEqual(classify(7, "!help", ADMINS, reserved=True), Blocked("help"))
        self.assertEqual(classify(42, "!HELP 2", ADMINS, reserved=True), Blocked("help"))

    def test_helpop_is_not_help(self) -> None:
        self.assertEqual(classify(42, "!helpop x", ADMINS, reserved=True), Command("helpop x"))

    def test_restart_for_admin_only(self) -> None:
        self.assertEqual(classify(42, "!restart", ADMINS, reserved=True), Restart())
        self.assertEqual(classify(42, "!Restart ", ADMINS, reserved=True), Restart())
        self.assertEqual(classify(7, "!restart", ADMINS, reserved=True), Unauthorized())

    def test_restart_with_arguments_is_a_plain_command(self) -> None:
        self.assertEqual(classify(42, "!restart now", ADMINS, reserved=True), Command("restart now"))

    def test_plain_text_mentioning_help(self) -> None:
        self.assertEqual(classify(42, "help", ADMINS, reserved=True), Plain())


if __name__ == "__main__":
    unittest.main()
