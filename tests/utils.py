import uuid

TEST_CODE = "123456"


def unique_phone(prefix: str = "82", digits: int = 7) -> str:
    """Return a unique canonical SA number using the given prefix and number of random digits."""
    suffix = str(uuid.uuid4().int % (10 ** digits)).zfill(digits)
    return f"+27{prefix}{suffix}"
