"""Unit tests for request/error framing and the transport choice."""

import pytest

from duofetch.exceptions import MalformedRequest
from duofetch.transfer.protocol import (
    Transport, decode_error, decode_request, encode_error, encode_request, is_error
)


class TestTransportChoice:

    @pytest.mark.parametrize('choice, expected', [
        ('TCP', Transport.STREAM),
        ('tcp', Transport.STREAM),
        (' Tcp ', Transport.STREAM),
        ('UDP', Transport.DATAGRAM),
        ('udp', Transport.DATAGRAM),
    ])
    def test_case_insensitive(self, choice, expected):
        assert Transport.parse(choice) is expected

    @pytest.mark.parametrize('choice', ['', 'ftp', 'tcp/udp', 'T C P'])
    def test_rejects_anything_else(self, choice):
        with pytest.raises(ValueError):
            Transport.parse(choice)


class TestRequests:

    def test_stream_request_is_newline_terminated(self):
        assert encode_request('10KB.txt') == b'10KB.txt\n'

    def test_datagram_request_has_no_newline(self):
        assert encode_request('10KB.txt', delimited=False) == b'10KB.txt'

    def test_decode_strips_delimiter_and_whitespace(self):
        assert decode_request(b'  docs/readme.txt\r\n') == 'docs/readme.txt'

    def test_decode_rejects_invalid_utf8(self):
        with pytest.raises(MalformedRequest):
            decode_request(b'\xff\xfe\n')


class TestErrors:

    def test_error_line_format(self):
        assert encode_error('File not found or access denied.') == \
            b'ERROR: File not found or access denied.\n'

    def test_is_error(self):
        assert is_error(b'ERROR: nope\n')
        assert not is_error(b'plain file content')
        assert not is_error(b'ERR')

    def test_decode_error_reason(self):
        assert decode_error(b'ERROR: Failed to read file.\n') == 'Failed to read file.'
