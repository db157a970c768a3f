import pytest

from recupera_bot.core.guardrails import canonical_address, display_address, sanitize_text


@pytest.mark.parametrize(
    "raw",
    [
        "34666111222",
        "34 666 111 222",
        "+34 666-111-222",
        "(+34) 666.111.222",
        "whatsapp:+34666111222",
        "whatsapp:+34 666 111 222",
        "WhatsApp:34666111222",
    ],
)
def test_canonical_address_is_the_same_for_every_ingress_format(raw):
    assert canonical_address(raw) == "whatsapp:+34666111222"


def test_canonical_address_uses_given_channel():
    assert canonical_address("+1 415 555 0100", channel="sms") == "sms:+14155550100"


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", "whatsapp:"])
def test_canonical_address_without_digits_is_none(raw):
    assert canonical_address(raw) is None


def test_display_address_strips_channel_prefix():
    assert display_address("whatsapp:+34666111222") == "+34666111222"
    assert display_address("+34666111222") == "+34666111222"


def test_sanitize_text_removes_control_chars_and_collapses_spaces():
    assert sanitize_text("  hola\x00  \n mundo\x07 ") == "hola mundo"
    assert sanitize_text(None) == ""
