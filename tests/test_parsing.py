import unittest

from codegenie.parsing import (
    OUTPUT_SENTINEL,
    TestCaseProtocolError,
    extract_strategy_update,
    outputs_match,
    parse_test_cases,
    split_sentinel_output,
    strip_code_fence,
)


class FenceAndCaseParsingTests(unittest.TestCase):
    def test_strip_json_fence(self) -> None:
        text = '```json\n[{"input": "1", "expected": "2"}]\n```'
        self.assertEqual(strip_code_fence(text), '[{"input": "1", "expected": "2"}]')

    def test_strip_plain_fence_and_surrounding_prose(self) -> None:
        text = 'Here you go:\n```\n[1, 2]\n```\nGood luck'
        self.assertEqual(strip_code_fence(text), "[1, 2]")

    def test_unfenced_text_is_trimmed(self) -> None:
        self.assertEqual(strip_code_fence("  [1]\n"), "[1]")

    def test_parse_fenced_and_unfenced_cases(self) -> None:
        body = '[{"input": "2 3", "expected": "5"}, {"input": "10 20", "expected": "30"}]'
        for text in (body, f"```json\n{body}\n```", f"```\n{body}\n```"):
            cases = parse_test_cases(text)
            self.assertEqual([(c.input, c.expected) for c in cases], [("2 3", "5"), ("10 20", "30")])

    def test_numbers_and_reason_are_coerced(self) -> None:
        cases = parse_test_cases('[{"input": 5, "expected": 25, "reason": "square"}]')
        self.assertEqual(cases[0].input, "5")
        self.assertEqual(cases[0].expected, "25")
        self.assertEqual(cases[0].reason, "square")

    def test_malformed_payloads_raise_protocol_error(self) -> None:
        for text in (
            "not json at all",
            '{"input": "1", "expected": "1"}',
            "[]",
            '[{"expected": "1"}]',
            '[{"input": "1"}]',
            '["1"]',
            '[{"input": "1", "expected": ""}]',
            '[{"input": "1", "expected": "   "}]',
        ):
            with self.assertRaises(TestCaseProtocolError, msg=text):
                parse_test_cases(text)

    def test_second_fence_in_reply_is_ignored(self) -> None:
        text = '```json\n[{"input": "1", "expected": "2"}]\n```\nand run:\n```\npython a.py\n```'
        self.assertEqual(strip_code_fence(text), '[{"input": "1", "expected": "2"}]')
        cases = parse_test_cases(text)
        self.assertEqual([(c.input, c.expected) for c in cases], [("1", "2")])


class OutputTests(unittest.TestCase):
    def test_split_without_sentinel_uses_trimmed_stdout(self) -> None:
        split = split_sentinel_output("  42 \n")
        self.assertEqual(split.validation, "42")
        self.assertEqual(split.display, "42")

    def test_split_with_logs_builds_display_value(self) -> None:
        split = split_sentinel_output(f"hello\n{OUTPUT_SENTINEL}\n42\n")
        self.assertEqual(split.validation, "42")
        self.assertEqual(split.display, "hello\n\n👉 결과값: 42")

    def test_split_without_logs(self) -> None:
        split = split_sentinel_output(f"{OUTPUT_SENTINEL}\n[1, 2]\n")
        self.assertEqual(split.validation, "[1, 2]")
        self.assertEqual(split.display, "[1, 2]")

    def test_split_uses_first_sentinel_only(self) -> None:
        split = split_sentinel_output(f"a\n{OUTPUT_SENTINEL}\nb\n{OUTPUT_SENTINEL}\nc")
        self.assertEqual(split.validation, f"b\n{OUTPUT_SENTINEL}\nc")

    def test_outputs_match_normalizes_crlf_and_whitespace(self) -> None:
        self.assertTrue(outputs_match("1\r\n2\r\n", "1\n2"))
        self.assertTrue(outputs_match(" 5 ", "5\n"))
        self.assertFalse(outputs_match("5", "6"))

    def test_empty_expected_always_matches(self) -> None:
        self.assertTrue(outputs_match("", "anything"))
        self.assertTrue(outputs_match(None, ""))


class StrategyTagTests(unittest.TestCase):
    def test_extracts_anchor_and_removes_span(self) -> None:
        update = extract_strategy_update("discussion [UPDATE_STRATEGY: A → B → C] end.")
        self.assertEqual(update.anchor, "A → B → C")
        self.assertEqual(update.text, "discussion  end.")
        self.assertFalse(update.malformed)

    def test_only_first_closing_bracket_is_used(self) -> None:
        update = extract_strategy_update("x [UPDATE_STRATEGY: use a[i] twice] y")
        self.assertEqual(update.anchor, "use a[i")
        self.assertEqual(update.text, "x  twice] y")

    def test_missing_close_is_malformed_and_untouched(self) -> None:
        text = "x [UPDATE_STRATEGY: never closed"
        update = extract_strategy_update(text)
        self.assertIsNone(update.anchor)
        self.assertTrue(update.malformed)
        self.assertEqual(update.text, text)

    def test_tag_is_case_sensitive(self) -> None:
        update = extract_strategy_update("[update_strategy: nope]")
        self.assertIsNone(update.anchor)
        self.assertFalse(update.malformed)


if __name__ == "__main__":
    unittest.main()
