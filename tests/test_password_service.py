import pytest

from domain.common.exceptions import CorruptDigestError, DomainValidationException
from domain.user.service import PasswordService


def test_hash_uses_fresh_salt_each_call():
    svc = PasswordService(iterations=1000)
    first = svc.hash_password("secret1")
    second = svc.hash_password("secret1")
    assert first != second
    assert first.startswith("pbkdf2_sha256$1000$")
    assert svc.verify_password("secret1", first)
    assert svc.verify_password("secret1", second)


def test_verify_rejects_wrong_password():
    svc = PasswordService(iterations=1000)
    digest = svc.hash_password("secret1")
    assert svc.verify_password("secret2", digest) is False


def test_verify_uses_iterations_embedded_in_digest():
    digest = PasswordService(iterations=1500).hash_password("secret1")
    assert PasswordService(iterations=1000).verify_password("secret1", digest)


@pytest.mark.parametrize(
    "digest",
    ["", "plaintext", "md5$1$salt$abc", "pbkdf2_sha256$notanumber$salt$abc", "pbkdf2_sha256$1000$$abc"],
)
def test_unparseable_digest_raises(digest):
    with pytest.raises(CorruptDigestError):
        PasswordService(iterations=1000).verify_password("secret1", digest)


def test_password_minimum_length():
    with pytest.raises(DomainValidationException) as exc:
        PasswordService.validate_password_strength("12345")
    assert exc.value.code == 400
    assert exc.value.field == "password"
    PasswordService.validate_password_strength("123456")
