"""Unit tests for signed download URLs."""

from urllib.parse import parse_qs, urlparse

import pytest

from signer import DOWNLOAD_PATH, UrlSigner

SECRET = "unit-test-secret"


@pytest.fixture
def signer(fake_clock):
    return UrlSigner(SECRET, clock=fake_clock)


class TestIssue:
    def test_url_carries_expiry_and_token(self, signer, fake_clock):
        signed = signer.issue("1700000000000-take.wav", 1800, "http://localhost:5000")

        parsed = urlparse(signed.url)
        query = parse_qs(parsed.query)
        assert parsed.path == f"{DOWNLOAD_PATH}/1700000000000-take.wav"
        assert signed.expires_at == int(fake_clock()) + 1800
        assert query["expires"] == [str(signed.expires_at)]
        assert query["token"] == [signed.token]

    def test_token_is_hex_sha256(self, signer):
        signed = signer.issue("a.wav", 60)

        assert len(signed.token) == 64
        int(signed.token, 16)

    def test_base_url_trailing_slash_is_trimmed(self, signer):
        signed = signer.issue("a.wav", 60, "https://cdn.example.com/")

        assert signed.url.startswith("https://cdn.example.com/api/download/a.wav?")

    def test_relative_url_without_base(self, signer):
        assert signer.issue("a.wav", 60).url.startswith("/api/download/a.wav?")

    def test_filename_is_percent_encoded(self, signer):
        signed = signer.issue("a b#c.wav", 60)

        assert "/api/download/a%20b%23c.wav?" in signed.url

    def test_same_inputs_same_token(self, signer):
        assert signer.issue("a.wav", 60).token == signer.issue("a.wav", 60).token

    def test_different_secret_different_token(self, fake_clock):
        one = UrlSigner("one", clock=fake_clock).issue("a.wav", 60)
        two = UrlSigner("two", clock=fake_clock).issue("a.wav", 60)

        assert one.token != two.token

    def test_empty_secret_rejected(self):
        with pytest.raises(ValueError):
            UrlSigner("")


class TestVerify:
    def test_fresh_token_verifies(self, signer):
        signed = signer.issue("a.wav", 60)

        assert signer.verify("a.wav", str(signed.expires_at), signed.token) is True

    def test_integer_expiry_accepted(self, signer):
        signed = signer.issue("a.wav", 60)

        assert signer.verify("a.wav", signed.expires_at, signed.token) is True

    def test_valid_until_expiry_second(self, signer, fake_clock):
        signed = signer.issue("a.wav", 60)
        fake_clock.advance(60)

        assert signer.verify("a.wav", str(signed.expires_at), signed.token) is True

    def test_expired_token_rejected(self, signer, fake_clock):
        signed = signer.issue("a.wav", 60)
        fake_clock.advance(61)

        assert signer.verify("a.wav", str(signed.expires_at), signed.token) is False

    def test_other_filename_rejected(self, signer):
        signed = signer.issue("a.wav", 60)

        assert signer.verify("b.wav", str(signed.expires_at), signed.token) is False

    def test_extended_expiry_rejected(self, signer):
        signed = signer.issue("a.wav", 60)

        assert signer.verify("a.wav", str(signed.expires_at + 1), signed.token) is False

    def test_uppercase_token_rejected(self, signer):
        signed = signer.issue("a.wav", 60)

        assert signer.verify("a.wav", str(signed.expires_at), signed.token.upper()) is False

    @pytest.mark.parametrize("expires", [None, "", "soon", "12.5", "0x10"])
    def test_malformed_expiry_rejected(self, signer, expires):
        signed = signer.issue("a.wav", 60)

        assert signer.verify("a.wav", expires, signed.token) is False

    @pytest.mark.parametrize("token", [None, "", "abc", "é" * 64])
    def test_malformed_token_rejected(self, signer, token):
        signed = signer.issue("a.wav", 60)

        assert signer.verify("a.wav", str(signed.expires_at), token) is False

    def test_rotated_secret_invalidates(self, signer, fake_clock):
        signed = signer.issue("a.wav", 60)
        rotated = UrlSigner("rotated", clock=fake_clock)

        assert rotated.verify("a.wav", str(signed.expires_at), signed.token) is False
