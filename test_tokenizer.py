# File to test tokenizer.py event stream
# Run with: python3 -m unittest test_tokenizer.py

import bz2
import io
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import tokenizer
from tokenizer import CDATA, EMPTY, END, EOF, MALFORMED, START, TEXT, iter_events, open_corpus


def events(data: bytes, **kwargs):
    return list(iter_events(io.BytesIO(data), **kwargs))


def kinds(data: bytes, **kwargs):
    return [(e.kind, e.value) for e in events(data, **kwargs)]


class TestTokenizer(unittest.TestCase):
    def test_simple_page_with_offsets(self):
        data = b"<page><title>A &amp; B</title></page>"
        result = events(data)
        self.assertEqual(
            [(e.kind, e.value, e.offset) for e in result],
            [
                (START, b"page", 0),
                (START, b"title", 6),
                (TEXT, b"A &amp; B", 13),
                (END, b"title", 22),
                (END, b"page", 30),
                (EOF, b"", 37),
            ],
        )

    def test_tiny_chunks_give_same_events(self):
        data = b'<page>\n  <title>Foo</title>\n  <text xml:space="preserve">[[Bar]] baz</text>\n</page>'
        self.assertEqual(kinds(data, chunk_size=3), kinds(data))

    def test_attributes_and_self_closing_tags(self):
        data = b'<text xml:space="preserve">x</text><text bytes="0" /><br/>'
        self.assertEqual(
            kinds(data),
            [
                (START, b"text"),
                (TEXT, b"x"),
                (END, b"text"),
                (EMPTY, b"text"),
                (EMPTY, b"br"),
                (EOF, b""),
            ],
        )

    def test_namespace_prefix_is_stripped(self):
        self.assertEqual(kinds(b"<mw:page></mw:page>"), [(START, b"page"), (END, b"page"), (EOF, b"")])

    def test_declarations_and_comments_are_skipped(self):
        data = b'<?xml version="1.0" encoding="UTF-8"?><!DOCTYPE x><!-- a <b> comment --><a/>'
        self.assertEqual(kinds(data, chunk_size=2), [(EMPTY, b"a"), (EOF, b"")])

    def test_cdata_section(self):
        data = b"<a><![CDATA[x <y> z]]></a>"
        self.assertEqual(
            kinds(data, chunk_size=4),
            [(START, b"a"), (CDATA, b"x <y> z"), (END, b"a"), (EOF, b"")],
        )

    def test_stray_angle_bracket_is_malformed(self):
        self.assertEqual(
            kinds(b"a < b <c>"),
            [(TEXT, b"a "), (MALFORMED, b"< b <c>"), (TEXT, b" b "), (START, b"c"), (EOF, b"")],
        )

    def test_closing_tag_cannot_self_close(self):
        self.assertEqual(kinds(b"</a/>")[0][0], MALFORMED)

    def test_truncated_tag_at_end_of_input(self):
        self.assertEqual(kinds(b"<page"), [(MALFORMED, b"<page"), (TEXT, b"page"), (EOF, b"")])

    def test_oversized_markup_is_malformed(self):
        data = b"<a " + b"x" * 100 + b"><b/>"
        with mock.patch.object(tokenizer, "MAX_MARKUP_BYTES", 16):
            result = kinds(data, chunk_size=8)
        self.assertEqual(result[0][0], MALFORMED)
        self.assertEqual(result[-2], (EMPTY, b"b"))
        self.assertEqual(result[-1], (EOF, b""))

    def test_mid_stream_start_resynchronizes(self):
        # What a scan sees when it starts in the middle of a <title> element
        data = b"itle>Foo</title><page><title>Bar</title>"
        result = events(data, offset=1000)
        self.assertEqual(
            [(e.kind, e.value) for e in result],
            [
                (TEXT, b"itle>Foo"),
                (END, b"title"),
                (START, b"page"),
                (START, b"title"),
                (TEXT, b"Bar"),
                (END, b"title"),
                (EOF, b""),
            ],
        )
        self.assertEqual(result[0].offset, 1000)
        self.assertEqual(result[2].offset, 1000 + data.index(b"<page>"))

    def test_long_text_spans_many_chunks(self):
        body = b"y" * 1000
        result = kinds(b"<text>" + body + b"</text>", chunk_size=7)
        self.assertEqual(result[1], (TEXT, body))

    def test_trailing_text_without_tag(self):
        result = events(b"<a>tail")
        self.assertEqual([(e.kind, e.value) for e in result], [(START, b"a"), (TEXT, b"tail"), (EOF, b"")])
        self.assertEqual(result[-1].offset, 7)

    def test_empty_input(self):
        self.assertEqual(kinds(b""), [(EOF, b"")])


class TestOpenCorpus(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.tmp_path = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_plain_and_bz2_files(self):
        data = b"<page><title>T</title></page>"
        plain = self.tmp_path / "dump.xml"
        plain.write_bytes(data)
        packed = self.tmp_path / "dump.xml.bz2"
        packed.write_bytes(bz2.compress(data))

        for path in (plain, packed):
            with open_corpus(path) as stream:
                self.assertEqual(stream.read(), data)
        self.assertTrue(tokenizer.is_compressed(packed))
        self.assertFalse(tokenizer.is_compressed(plain))
        self.assertEqual(tokenizer.corpus_size(plain), len(data))


if __name__ == "__main__":
    unittest.main()
