import hashlib

from app.services.signature import canonical_form, compute_signature, sign_payload, verify_signature


def _fields() -> dict[str, str]:
    return {
        "m_payment_id": "T1",
        "payment_status": "COMPLETE",
        "amount_gross": "1000.00",
        "item_name": "Logo design & branding",
        "custom_str1": "JOB1",
        "custom_str2": "FL1",
        "custom_str3": "",
    }


def test_canonical_form_sorts_and_drops_empty_values():
    canonical = canonical_form(_fields())

    assert canonical == (
        "amount_gross=1000.00&custom_str1=JOB1&custom_str2=FL1"
        "&item_name=Logo+design+%26+branding&m_payment_id=T1&payment_status=COMPLETE"
    )


def test_canonical_form_appends_passphrase_last():
    canonical = canonical_form({"b": "2", "a": "1"}, "my pass")
    assert canonical == "a=1&b=2&passphrase=my+pass"


def test_empty_passphrase_is_not_appended():
    assert canonical_form({"a": "1"}, "") == "a=1"
    assert canonical_form({"a": "1"}, None) == "a=1"


def test_signature_field_is_ignored():
    fields = {**_fields(), "signature": "deadbeef"}
    assert canonical_form(fields) == canonical_form(_fields())


def test_encoding_matches_encode_uri_component():
    canonical = canonical_form({"note": "it's (50%)! ~ok*"})
    assert canonical == "note=it's+(50%25)!+~ok*"


def test_signature_is_lowercase_md5_of_canonical_form():
    expected = hashlib.md5(canonical_form(_fields(), "secret").encode("utf-8")).hexdigest()
    assert compute_signature(_fields(), "secret") == expected
    assert expected == expected.lower()


def test_sign_then_verify_round_trip():
    signed = sign_payload(_fields(), "secret")

    assert verify_signature(signed, signed["signature"], "secret")
    assert verify_signature(signed, signed["signature"].upper(), "secret")


def test_single_byte_change_breaks_signature():
    signed = sign_payload(_fields(), "secret")
    tampered = {**signed, "amount_gross": "1000.01"}

    assert not verify_signature(tampered, signed["signature"], "secret")


def test_wrong_passphrase_or_missing_signature_is_rejected():
    signed = sign_payload(_fields(), "secret")

    assert not verify_signature(signed, signed["signature"], "other")
    assert not verify_signature(signed, signed["signature"], None)
    assert not verify_signature(signed, None, "secret")
    assert not verify_signature(signed, "", "secret")
