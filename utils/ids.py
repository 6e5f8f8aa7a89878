import uuid


def new_id() -> str:
    """Random 128-bit id, used as the primary key of every table."""
    return str(uuid.uuid4())
