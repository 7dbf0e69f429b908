"""
ISBN validation and normalisation for catalog entries

For isbn related info, see https://isbn-information.com/
"""
from typing import Optional

ISBN13_CHECKS = [1, 3, 1, 3, 1, 3, 1, 3, 1, 3, 1, 3, 1]
ISBN10_CHECKS = [10, 9, 8, 7, 6, 5, 4, 3, 2]
VALID_PREFIX_ELEMENTS = ["978", "979"]
VALIDATION_ERRORS = {
    "length": "Input is not of the correct length.",
    "invalid": "Input has invalid characters.",
    "13X": "ISBN 13 has invalid 'X' character",
    "prefix": "ISBN 13 starts with invalid Prefix Element {}",
    "checksum": "ISBN {} has an invalid check digit",
    }

def strip_isbn(isbn: str) -> str:
    return isbn.replace("-", "").replace(" ", "").upper()

def is_valid(isbn: str) -> bool:
    """
    Validates an ISBN 10 or 13

    Parameters
    ----------
    isbn : str
        An ISBN code (10 or 13), dashes and spaces allowed

    Returns
    -------
    bool
        True if the check digit matches, False otherwise.

    Raises
    ------
    ValueError
        If isbn has invalid characters or is not of proper length

    """
    stripped = strip_isbn(isbn)
    if len(stripped) not in [10, 13]:
        raise ValueError(VALIDATION_ERRORS["length"])
    if any(char not in "0123456789X" for char in stripped):
        raise ValueError(VALIDATION_ERRORS["invalid"])
    if len(stripped) == 13:
        if "X" in stripped:
            raise ValueError(VALIDATION_ERRORS["13X"])
        if stripped[:3] not in VALID_PREFIX_ELEMENTS:
            raise ValueError(VALIDATION_ERRORS["prefix"].format(stripped[:3]))
        return sum(a * int(b) for (a, b) in zip(ISBN13_CHECKS, stripped)) % 10 == 0
    if "X" in stripped[:-1]:
        raise ValueError(VALIDATION_ERRORS["invalid"])
    check = 10 if stripped[-1] == "X" else int(stripped[-1])
    return (sum(a * int(b) for (a, b) in zip(ISBN10_CHECKS, stripped[:-1])) + check) % 11 == 0

def to_isbn13(isbn: str) -> str:
    """
    Converts a valid ISBN 10 to its ISBN 13 form; ISBN 13 input comes back stripped.
    """
    stripped = strip_isbn(isbn)
    if len(stripped) == 13:
        return stripped
    body = "978" + stripped[:-1]
    check_digit = (10 - sum(a * int(b) for (a, b) in zip(ISBN13_CHECKS[:-1], body)) % 10) % 10
    return body + str(check_digit)

def normalize_isbn(isbn: Optional[str]) -> str:
    """Validate ``isbn`` and return the canonical 13 digit form stored on a Book.

    Raises ValueError with a readable message when the ISBN is unusable.
    """
    if not isbn or not isbn.strip():
        raise ValueError(VALIDATION_ERRORS["length"])
    if not is_valid(isbn):
        raise ValueError(VALIDATION_ERRORS["checksum"].format(isbn))
    return to_isbn13(isbn)
