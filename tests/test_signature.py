"""Webhook HMAC signature checks."""

import hashlib
import hmac

from chathive.domains.whatsapp.security import build_signature, verify_signature

SECRET = "s3cret"
BODY = b'{"object":"whatsapp_business_account","entry":[]}'


def test_build_signature_matches_meta_format() -> None:
    expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert build_signature(SECRET, BODY) == f"sha256={expected}"


def test_valid_signature_is_accepted() -> None:
    assert verify_signature(BODY, build_signature(SECRET, BODY), SECRET) is True


def test_surrounding_whitespace_is_ignored() -> None:
    assert verify_signature(BODY, f"  {build_signature(SECRET, BODY)} ", SECRET) is True


def test_tampered_body_is_rejected() -> None:
    signature = build_signature(SECRET, BODY)
    assert verify_signature(BODY + b" ", signature, SECRET) is False


def test_signature_from_other_secret_is_rejected() -> None:
    assert verify_signature(BODY, build_signature("other", BODY), SECRET) is False


def test_bare_hex_without_prefix_is_rejected() -> None:
    digest = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()
    assert verify_signature(BODY, digest, SECRET) is False


def test_missing_header_is_rejected_when_secret_configured() -> None:
    assert verify_signature(BODY, None, SECRET) is False
    assert verify_signature(BODY, "", SECRET) is False


def test_non_ascii_header_is_rejected() -> None:
    assert verify_signature(BODY, "sha256=ñ", SECRET) is False


def test_no_secret_configured_accepts_everything() -> None:
    assert verify_signature(BODY, None, "") is True
    assert verify_signature(BODY, "sha256=garbage", "") is True
