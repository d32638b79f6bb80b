import base64
import secrets

# Edit ids are typed by hand, so ambiguous characters (i, l, o, 0, 1) are left out.
EDIT_ID_CHARSET = "abcdefghjkmnpqrstuvwxyz23456789"
EDIT_ID_GROUP_LEN = 4
EDIT_ID_GROUPS = 4


def generate_calendar_id() -> str:
    """Generates the public calendar id used in feed URLs.

    Returns:
        26 characters of unpadded base32 (128 random bits).
    """
    return base64.b32encode(secrets.token_bytes(16)).decode("ascii").rstrip("=")


def generate_edit_id() -> str:
    """Generates the secret id that grants edit access to a calendar.

    Returns:
        A 16 character string drawn from EDIT_ID_CHARSET.
    """
    length = EDIT_ID_GROUP_LEN * EDIT_ID_GROUPS
    return "".join(secrets.choice(EDIT_ID_CHARSET) for _ in range(length))
