from typing import Callable, Dict


def _digits(text: str) -> str:
    return "".join(ch for ch in text if ch.isdigit())


def luhn_valid(text: str) -> bool:
    """Card number checksum over the digits of text (separators ignored)."""
    digits = _digits(text)
    if not 13 <= len(digits) <= 19:
        return False

    total = 0
    for i, ch in enumerate(reversed(digits)):
        d = int(ch)
        if i % 2 == 1:
            d *= 2
            if d > 9:
                d -= 9
        total += d
    return total % 10 == 0


def aba_routing_valid(text: str) -> bool:
    """ABA routing number checksum: 3-7-1 weights over nine digits."""
    digits = _digits(text)
    if len(digits) != 9:
        return False

    d = [int(ch) for ch in digits]
    checksum = 3 * (d[0] + d[3] + d[6]) + 7 * (d[1] + d[4] + d[7]) + (d[2] + d[5] + d[8])
    return checksum % 10 == 0


VALIDATORS: Dict[str, Callable[[str], bool]] = {
    "luhn": luhn_valid,
    "aba": aba_routing_valid,
}
