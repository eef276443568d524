# File to test extractor.py link scanning
# Run with: python3 -m unittest test_extractor.py

import unittest
from unittest import mock

import extractor
from extractor import extract_links, split_link


class TestExtractLinks(unittest.TestCase):
    def test_plain_and_labelled_links(self):
        body = b"See [[Alpha]] and [[Beta|Beta Label]] for more."
        self.assertEqual(extract_links(body), [b"Alpha", b"Beta|Beta Label"])

    def test_unterminated_link_yields_nothing(self):
        self.assertEqual(extract_links(b"[[Gamma"), [])

    def test_single_bracket_is_not_a_link(self):
        self.assertEqual(extract_links(b"[single bracket] no double"), [])

    def test_repeated_runs_are_identical(self):
        body = b"[[A]] text [[B|b]] [x] [[C]] [[D"
        first = extract_links(body)
        self.assertEqual(first, [b"A", b"B|b", b"C"])
        self.assertEqual(extract_links(body), first)

    def test_empty_and_bracket_only_inputs(self):
        self.assertEqual(extract_links(b""), [])
        self.assertEqual(extract_links(b"["), [])
        self.assertEqual(extract_links(b"text ending in ["), [])

    def test_empty_link(self):
        self.assertEqual(extract_links(b"[[]]"), [b""])

    def test_token_stops_at_first_close_bracket(self):
        # No nesting: the inner bracket belongs to the token
        self.assertEqual(extract_links(b"[[[x]]"), [b"[x"])
        self.assertEqual(extract_links(b"[[File:a.png|thumb|[[Inner]] caption]]"), [b"File:a.png|thumb|[[Inner"])

    def test_lone_bracket_followed_by_link(self):
        self.assertEqual(extract_links(b"[a[[b]]"), [b"b"])

    def test_adjacent_links(self):
        self.assertEqual(extract_links(b"[[a]][[b]]"), [b"a", b"b"])

    def test_multibyte_content_is_kept_raw(self):
        body = "Born in [[Zürich]].".encode("utf-8")
        self.assertEqual(extract_links(body), ["Zürich".encode("utf-8")])

    def test_accepts_bytearray(self):
        self.assertEqual(extract_links(bytearray(b"x [[y]]")), [b"y"])


class TestSplitLink(unittest.TestCase):
    def test_link_with_label(self):
        self.assertEqual(split_link("Beta|Beta Label"), ("Beta", "Beta Label"))

    def test_link_without_label(self):
        self.assertEqual(split_link("Alpha"), ("Alpha", None))

    def test_label_keeps_later_pipes(self):
        self.assertEqual(split_link("a|b|c"), ("a", "b|c"))

    def test_falls_back_to_pipe_split(self):
        wikicode = mock.Mock()
        wikicode.filter_wikilinks.return_value = []
        with mock.patch.object(extractor.mwparserfromhell, "parse", return_value=wikicode):
            self.assertEqual(split_link(" Odd target |label"), ("Odd target", "label"))
            self.assertEqual(split_link("Odd"), ("Odd", None))


if __name__ == "__main__":
    unittest.main()
