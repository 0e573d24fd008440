import uuid

def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def pair_id(a: str, b: str) -> str:
    """Order-independent id for a two-party record (same pair -> same id)."""
    first, second = sorted((a, b))
    return f"{first}_{second}"
