import importlib
import sys
from pathlib import Path
import unittest

SERVICE_DIR = Path(__file__).resolve().parents[2] / "services" / "manage-doc"


def load_service_module(module_name):
    if str(SERVICE_DIR) not in sys.path:
        sys.path.insert(0, str(SERVICE_DIR))
    return importlib.import_module(module_name)


multipart = load_service_module("multipart_decoder")
errors = load_service_module("errors")

BOUNDARY = "----WebKitFormBoundary7MA4YWxkTrZu0gW"
CONTENT_TYPE = f"multipart/form-data; boundary={BOUNDARY}"
PDF_BYTES = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF"


def field_part(name, value):
    return (
        f"--{BOUNDARY}\r\n"
        f'Content-Disposition: form-data; name="{name}"\r\n'
        "\r\n"
        f"{value}\r\n"
    ).encode("utf-8")


def file_part(file_name, content, content_type="application/pdf", field_name="file"):
    headers = f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{field_name}"; filename="{file_name}"\r\n'
    if content_type:
        headers += f"Content-Type: {content_type}\r\n"
    return headers.encode("utf-8") + b"\r\n" + content + b"\r\n"


def closing():
    return f"--{BOUNDARY}--\r\n".encode("utf-8")


def split_into(data, size):
    return [data[offset:offset + size] for offset in range(0, len(data), size)]


class ParseBoundaryTests(unittest.TestCase):
    def test_plain_boundary(self):
        self.assertEqual(multipart.parse_boundary(CONTENT_TYPE), BOUNDARY)

    def test_quoted_boundary(self):
        boundary = multipart.parse_boundary('multipart/form-data; charset=utf-8; boundary="abc def"')

        self.assertEqual(boundary, "abc def")

    def test_rejects_non_multipart_content_type(self):
        with self.assertRaises(errors.MultipartParseError) as ctx:
            multipart.parse_boundary("application/json")

        self.assertEqual(str(ctx.exception), "Not a multipart/form-data request")

    def test_rejects_missing_content_type(self):
        with self.assertRaises(errors.MultipartParseError):
            multipart.parse_boundary(None)

    def test_rejects_missing_boundary(self):
        with self.assertRaises(errors.MultipartParseError) as ctx:
            multipart.parse_boundary("multipart/form-data")

        self.assertEqual(str(ctx.exception), "Missing multipart boundary")


class DecodeMultipartTests(unittest.TestCase):
    def test_single_file_part(self):
        body = file_part("report.pdf", PDF_BYTES) + closing()

        part = multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.file_name, "report.pdf")
        self.assertEqual(part.field_name, "file")
        self.assertEqual(part.content_type, "application/pdf")
        self.assertEqual(part.content, PDF_BYTES)

    def test_byte_at_a_time_feed_matches_single_feed(self):
        body = field_part("description", "quarterly") + file_part("report.pdf", PDF_BYTES) + closing()

        part = multipart.decode_multipart(split_into(body, 1), CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.file_name, "report.pdf")
        self.assertEqual(part.content, PDF_BYTES)

    def test_odd_chunk_sizes_keep_content_intact(self):
        content = bytes(range(256)) * 8
        body = file_part("blob.png", content, content_type="image/png") + closing()

        for size in (2, 7, 63, 64, 65, 500):
            with self.subTest(size=size):
                part = multipart.decode_multipart(split_into(body, size), CONTENT_TYPE, max_file_size=1 << 20)
                self.assertEqual(part.content, content)

    def test_preamble_and_epilogue_are_ignored(self):
        body = b"This is the preamble.\r\n" + file_part("notes.txt", b"hello", "text/plain") + closing()
        body += b"trailing epilogue bytes"

        part = multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.content, b"hello")

    def test_content_resembling_delimiter_is_kept(self):
        content = b"line one\r\n--not-the-boundary\r\n--" + BOUNDARY[:-1].encode("ascii") + b"X line"
        body = file_part("notes.txt", content, "text/plain") + closing()

        part = multipart.decode_multipart(split_into(body, 5), CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.content, content)

    def test_missing_part_content_type_defaults_to_octet_stream(self):
        body = file_part("notes.txt", b"hello", content_type=None) + closing()

        part = multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.content_type, "application/octet-stream")

    def test_empty_file_content(self):
        body = file_part("empty.txt", b"", "text/plain") + closing()

        part = multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.content, b"")
        self.assertEqual(part.file_name, "empty.txt")

    def test_extended_filename_parameter(self):
        body = (
            f"--{BOUNDARY}\r\n"
            "Content-Disposition: form-data; name=\"file\"; filename*=UTF-8''r%C3%A9sum%C3%A9.pdf\r\n"
            "Content-Type: application/pdf\r\n"
            "\r\n"
        ).encode("utf-8") + PDF_BYTES + b"\r\n" + closing()

        part = multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.file_name, "résumé.pdf")

    def test_first_file_part_wins(self):
        body = file_part("first.txt", b"one", "text/plain") + file_part("second.txt", b"two", "text/plain") + closing()

        part = multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(part.file_name, "first.txt")
        self.assertEqual(part.content, b"one")

    def test_no_file_part(self):
        body = field_part("description", "no attachment") + closing()

        with self.assertRaises(errors.MultipartParseError) as ctx:
            multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(str(ctx.exception), "No file found in form data")

    def test_missing_terminal_boundary(self):
        body = file_part("report.pdf", PDF_BYTES)

        with self.assertRaises(errors.MultipartParseError) as ctx:
            multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)

        self.assertEqual(str(ctx.exception), "Unexpected end of multipart body")

    def test_file_over_limit_fails(self):
        body = file_part("big.txt", b"x" * 11, "text/plain") + closing()

        with self.assertRaises(errors.FileTooLargeError):
            multipart.decode_multipart(split_into(body, 4), CONTENT_TYPE, max_file_size=10)

    def test_file_at_limit_succeeds(self):
        body = file_part("exact.txt", b"x" * 10, "text/plain") + closing()

        part = multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=10)

        self.assertEqual(len(part.content), 10)

    def test_part_without_content_disposition(self):
        body = f"--{BOUNDARY}\r\nContent-Type: text/plain\r\n\r\nhello\r\n".encode("ascii") + closing()

        with self.assertRaises(errors.MultipartParseError):
            multipart.decode_multipart([body], CONTENT_TYPE, max_file_size=1024)


class MultipartDecoderStateTests(unittest.TestCase):
    def test_state_transitions(self):
        decoder = multipart.MultipartDecoder(BOUNDARY, max_file_size=1024)
        self.assertIs(decoder.state, multipart.DecoderState.AWAITING_BOUNDARY)

        decoder.feed(f"--{BOUNDARY}\r\n".encode("ascii"))
        self.assertIs(decoder.state, multipart.DecoderState.IN_HEADERS)

        decoder.feed(b'Content-Disposition: form-data; name="file"; filename="a.txt"\r\n\r\n')
        self.assertIs(decoder.state, multipart.DecoderState.IN_BODY)

        decoder.feed(b"abc\r\n" + closing())
        self.assertIs(decoder.state, multipart.DecoderState.DONE)

        decoder.close()
        self.assertEqual(decoder.file.content, b"abc")

    def test_fields_are_collected(self):
        decoder = multipart.MultipartDecoder(BOUNDARY, max_file_size=1024)
        decoder.feed(field_part("folder", "invoices") + file_part("a.pdf", PDF_BYTES) + closing())
        decoder.close()

        self.assertEqual(decoder.fields, {"folder": "invoices"})

    def test_feed_after_done_is_ignored(self):
        decoder = multipart.MultipartDecoder(BOUNDARY, max_file_size=1024)
        decoder.feed(file_part("a.txt", b"abc", "text/plain") + closing())
        decoder.feed(b"more epilogue")
        decoder.close()

        self.assertEqual(decoder.file.content, b"abc")

    def test_malformed_delimiter_line(self):
        decoder = multipart.MultipartDecoder(BOUNDARY, max_file_size=1024)

        with self.assertRaises(errors.MultipartParseError):
            decoder.feed(f"--{BOUNDARY}garbage\r\n".encode("ascii"))
