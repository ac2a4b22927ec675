"""Join codes, group abbreviations and member numbers."""

import secrets
import string

JOIN_CODE_LENGTH = 6
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_join_code() -> str:
    """Random 6-character uppercase alphanumeric code (uniqueness is checked by the caller)."""
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def abbreviate(name: str) -> str:
    """
    Derive a group abbreviation from its name.

    - 3+ words: initials of the first three words ("Lagos Social Club" -> "LSC")
    - 2 words: first two letters of word one + first letter of word two
    - 1 word: first three letters
    """
    words = name.split()
    if len(words) >= 3:
        abbreviation = "".join(word[0] for word in words[:3])
    elif len(words) == 2:
        abbreviation = words[0][:2] + words[1][0]
    elif words:
        abbreviation = words[0][:3]
    else:
        abbreviation = ""
    return abbreviation.upper()


def format_member_number(abbreviation: str, sequence: int) -> str:
    return f"{abbreviation}-{sequence:03d}"
