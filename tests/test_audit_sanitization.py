from app.models.audit import AuditLog
from app.utils.audit import log_audit, mask_account_number


def test_audit_log_masks_sensitive_fields(db_session):
    payload = {
        "account_number": "62845571234",
        "email": "sensitive@example.com",
        "merchant_key": "46f0cd694581a",
        "passphrase": "jt7NOE43FZPn",
        "signature": "a" * 32,
        "provider_ref": "PF-12345678",
        "amount": "900.00",
        "nested": [{"account_number": "1234567"}],
    }

    log_audit(
        db_session,
        actor="test",
        action="MASK_TEST",
        entity="BankAccount",
        entity_id=1,
        data=payload,
    )
    db_session.commit()

    entry = (
        db_session.query(AuditLog)
        .filter(AuditLog.action == "MASK_TEST")
        .order_by(AuditLog.id.desc())
        .first()
    )
    assert entry is not None
    data = entry.data_json
    assert data["account_number"] == "***1234"
    assert data["email"] == "***@example.com"
    assert data["merchant_key"] == "***"
    assert data["passphrase"] == "***"
    assert data["signature"] == "***"
    assert data["provider_ref"] == "***5678"
    assert data["amount"] == "900.00"
    assert data["nested"][0]["account_number"] == "***4567"


def test_mask_account_number_keeps_last_four():
    assert mask_account_number("6284 5571 234") == "***1234"
    assert mask_account_number("123") == "***123"
    assert mask_account_number(None) == "***"
