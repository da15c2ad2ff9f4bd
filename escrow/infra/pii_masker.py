"""
PII (Personally Identifiable Information) masking utilities.
"""
import re


UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.I)
PHONE_RE = re.compile(r"^[\d\s\+\-\(\)]+$")

PII_FIELDS = {
    "phone", "delivery_phone", "deliveryphone",
    "address", "delivery_address", "deliveryaddress",
    "user_id", "buyer_id", "seller_id", "courier_id", "reporter_id", "payee_id",
    "buyerid", "sellerid", "courierid", "reporterid", "payeeid",
}


def mask_phone(phone: str) -> str:
    """Mask phone number."""
    if len(phone) <= 4:
        return "*" * len(phone)
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]


def mask_address(address: str) -> str:
    """Keep only the first word (usually the city or district)."""
    words = address.split()
    if len(words) <= 1:
        return "***"
    return words[0] + " ***"


def mask_uuid(uuid_str: str) -> str:
    """Mask UUID (show first 8 chars only)."""
    if len(uuid_str) < 8:
        return "*" * len(uuid_str)
    return uuid_str[:8] + "-****-****-****-************"


def mask_value(key: str, value: str) -> str:
    key_lower = key.lower()
    if "address" in key_lower:
        return mask_address(value)
    if UUID_RE.match(value):
        return mask_uuid(value)
    if PHONE_RE.match(value):
        return mask_phone(value)
    return mask_uuid(value) if len(value) > 10 else value


def mask_pii_in_dict(data: dict) -> dict:
    """Mask PII in dictionary recursively."""
    masked = {}
    for key, value in data.items():
        if isinstance(value, dict):
            masked[key] = mask_pii_in_dict(value)
        elif isinstance(value, list):
            masked[key] = [mask_pii_in_dict(item) if isinstance(item, dict) else item for item in value]
        elif key.lower() in PII_FIELDS and isinstance(value, str):
            masked[key] = mask_value(key, value)
        else:
            masked[key] = value
    return masked
