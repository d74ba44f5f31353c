import security


def test_hash_and_verify_password():
    salt_b64, hash_b64 = security.hash_password("touchdown")
    assert security.verify_password("touchdown", salt_b64=salt_b64, password_hash_b64=hash_b64)
    assert not security.verify_password("fieldgoal", salt_b64=salt_b64, password_hash_b64=hash_b64)


def test_hash_uses_fresh_salt():
    assert security.hash_password("same") != security.hash_password("same")


def test_verify_password_bad_encoding():
    assert not security.verify_password("x", salt_b64="!!not-base64!!", password_hash_b64="??")


def test_check_passcode_without_hash():
    assert not security.check_passcode({"enabled": True, "passcodeSalt": "", "passcodeHash": ""}, "")
    assert not security.check_passcode({}, "anything")


def test_check_passcode_matches():
    salt_b64, hash_b64 = security.hash_password("1234")
    admin = {"enabled": True, "passcodeSalt": salt_b64, "passcodeHash": hash_b64}
    assert security.check_passcode(admin, "1234")
    assert not security.check_passcode(admin, "12345")


def test_parse_admin_emails():
    emails = security.parse_admin_emails(" Mom@Example.com, dad@example.com;\nkid@example.com  ,")
    assert emails == frozenset({"mom@example.com", "dad@example.com", "kid@example.com"})
    assert security.parse_admin_emails(None) == frozenset()
    assert security.parse_admin_emails(["A@B.C", ""]) == frozenset({"a@b.c"})


def test_admin_emails_from_env(monkeypatch):
    monkeypatch.setenv("SQUARES_ADMIN_EMAILS", "coach@example.com")
    assert security.admin_emails_from_env() == frozenset({"coach@example.com"})
    monkeypatch.delenv("SQUARES_ADMIN_EMAILS")
    assert security.admin_emails_from_env() == frozenset()


def test_is_admin_email():
    allow = ["coach@example.com"]
    assert security.is_admin_email("  COACH@example.com ", allow)
    assert not security.is_admin_email("fan@example.com", allow)
    assert not security.is_admin_email(None, allow)
    assert not security.is_admin_email("", [""])
