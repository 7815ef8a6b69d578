# src/assocpay/utils/id_generator.py

import secrets
import string
import uuid

_ORDER_ALPHABET = string.ascii_uppercase + string.digits

def generate_uuid() -> str:
    return str(uuid.uuid4())

def generate_order_number(prefix: str = "ORDER", length: int = 10) -> str:
    """Human-facing order number, e.g. ORDER-7K2Q9XB3MD."""
    token = "".join(secrets.choice(_ORDER_ALPHABET) for _ in range(length))
    return f"{prefix}-{token}"
