from app.config import Settings


def test_passphrase_with_surrounding_spaces_is_kept_verbatim():
    settings = Settings(PAYFAST_PASSPHRASE=" pass phrase ")
    assert settings.PAYFAST_PASSPHRASE == " pass phrase "


def test_blank_secrets_become_none():
    settings = Settings(PAYFAST_PASSPHRASE="   ", SERVICE_API_KEY="")
    assert settings.PAYFAST_PASSPHRASE is None
    assert settings.SERVICE_API_KEY is None
