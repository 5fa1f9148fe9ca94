"""
Utility functions for the SMS inbox.
"""


def mask_number(number: str) -> str:
    """
    Mask a phone number for logging, keeping only the last 3 characters.

    Args:
        number: Sender or recipient identifier as reported by the provider

    Returns:
        Masked identifier, e.g. "***456"
    """
    if not number or number == "unknown":
        return number
    return f"***{number[-3:]}" if len(number) > 3 else "***"


def scrub_text(value: str) -> str:
    """
    Replace lone UTF-16 surrogates with "?".

    JSON allows escapes such as "\\ud83d" on their own (a split emoji), but
    they cannot be encoded as UTF-8 and would make the insert fail.
    """
    return value.encode("utf-8", "replace").decode("utf-8")
