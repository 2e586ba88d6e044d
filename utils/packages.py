"""Accommodation package names, nightly costs and export codes"""
from typing import Optional

# Foundation stay nightly cost, matched by package name
SUPPORT_PACKAGE_COSTS = [
    ("Wellness & Support Package", 985),
    ("Wellness & High Support Package", 1365),
    ("Wellness & Very High Support Package", 1740),
]

_PACKAGE_CODES = [
    ("Wellness & Very High Support Package", "WVHS"),
    ("Wellness & High Support Package", "WHS"),
    ("Wellness & Support", "WS"),
    ("Wellness and Support", "WS"),
    ("NDIS Support Package - No 1:1 assistance with self-care", "SP"),
    ("NDIS Care Support Package - includes up to 6 hours of 1:1 assistance with self-care", "CSP"),
    ("NDIS High Care Support Package - includes up to 12 hours of 1:1 assistance with self-care", "HCSP"),
]


def package_cost(package_name: Optional[str]) -> Optional[int]:
    if not package_name:
        return None
    for name, cost in SUPPORT_PACKAGE_COSTS:
        if name in package_name:
            return cost
    return None


def describe_package_with_cost(package_name: Optional[str]) -> Optional[str]:
    if not package_name:
        return None
    cost = package_cost(package_name)
    return f"{package_name} - ${cost}/night" if cost else package_name


def serialize_package(package_name: Optional[str]) -> str:
    if not package_name:
        return ""
    for name, code in _PACKAGE_CODES:
        if name in package_name:
            return code
    return ""
