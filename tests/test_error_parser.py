import pytest

from interfaces.core import Platform
from utils.error_parser import extract_error_code, parse_transaction_error


@pytest.mark.parametrize(
    "error, code",
    [
        ("InstructionError((3, Tagged(Custom(InstructionErrorCustom(6002)))))", 6002),
        ("Custom(6023)", 6023),
        ('{"InstructionError": [2, {"Custom": 6004}]}', 6004),
        ("InsufficientFundsForRent", None),
        (None, None),
    ],
)
def test_extract_error_code(error, code):
    assert extract_error_code(error) == code


def test_pumpfun_slippage_error():
    parsed = parse_transaction_error("Custom(6003)", Platform.PUMP_FUN)
    assert parsed.name == "TooLittleSolReceived"
    assert parsed.is_slippage


def test_same_code_differs_per_platform():
    assert parse_transaction_error("Custom(6004)", Platform.PUMP_SWAP).is_slippage
    assert not parse_transaction_error("Custom(6004)", Platform.PUMP_FUN).is_slippage


def test_unknown_code_keeps_raw_message():
    parsed = parse_transaction_error("Custom(9999)")
    assert parsed.code == 9999
    assert parsed.name is None
    assert parsed.message == "Custom(9999)"


def test_empty_error():
    assert parse_transaction_error("").code is None
