"""
Static pincode reference data.

Three read-only tables back the offline tiers of the pincode resolver:

- ``KNOWN_PINCODES``: exact pincodes answered without any I/O
- ``DISTRICT_PREFIXES``: leading three digits identifying a sorting district
- ``STATE_PREFIXES``: leading two digits identifying a postal circle

Every table is a ``MappingProxyType`` so callers cannot mutate the shared
defaults; custom tables are injected into the resolver strategies instead.
"""

from types import MappingProxyType
from typing import Mapping, Optional, Tuple

# pincode -> (state, district)
KNOWN_PINCODES: Mapping[str, Tuple[str, str]] = MappingProxyType(
    {
        "632001": ("Tamil Nadu", "Vellore"),
        "632002": ("Tamil Nadu", "Vellore"),
        "632004": ("Tamil Nadu", "Vellore"),
        "632006": ("Tamil Nadu", "Vellore"),
        "632014": ("Tamil Nadu", "Vellore"),
        "600001": ("Tamil Nadu", "Chennai"),
        "600017": ("Tamil Nadu", "Chennai"),
        "600040": ("Tamil Nadu", "Chennai"),
        "641001": ("Tamil Nadu", "Coimbatore"),
        "625001": ("Tamil Nadu", "Madurai"),
        "560001": ("Karnataka", "Bengaluru Urban"),
        "400001": ("Maharashtra", "Mumbai"),
        "411001": ("Maharashtra", "Pune"),
        "110001": ("Delhi", "New Delhi"),
        "700001": ("West Bengal", "Kolkata"),
        "500001": ("Telangana", "Hyderabad"),
        "380001": ("Gujarat", "Ahmedabad"),
        "682001": ("Kerala", "Ernakulam"),
        "302001": ("Rajasthan", "Jaipur"),
        "226001": ("Uttar Pradesh", "Lucknow"),
    }
)

# first three digits -> (state, district)
DISTRICT_PREFIXES: Mapping[str, Tuple[str, str]] = MappingProxyType(
    {
        "110": ("Delhi", "New Delhi"),
        "160": ("Chandigarh", "Chandigarh"),
        "226": ("Uttar Pradesh", "Lucknow"),
        "302": ("Rajasthan", "Jaipur"),
        "380": ("Gujarat", "Ahmedabad"),
        "400": ("Maharashtra", "Mumbai"),
        "403": ("Goa", "North Goa"),
        "411": ("Maharashtra", "Pune"),
        "500": ("Telangana", "Hyderabad"),
        "560": ("Karnataka", "Bengaluru Urban"),
        "600": ("Tamil Nadu", "Chennai"),
        "625": ("Tamil Nadu", "Madurai"),
        "632": ("Tamil Nadu", "Vellore"),
        "641": ("Tamil Nadu", "Coimbatore"),
        "682": ("Kerala", "Ernakulam"),
        "695": ("Kerala", "Thiruvananthapuram"),
        "700": ("West Bengal", "Kolkata"),
    }
)


def _circles(*entries: Tuple[range, str]) -> Mapping[str, str]:
    table = {}
    for prefixes, state in entries:
        for prefix in prefixes:
            table[f"{prefix:02d}"] = state
    return MappingProxyType(table)


# first two digits -> state (postal circle)
STATE_PREFIXES: Mapping[str, str] = _circles(
    (range(11, 12), "Delhi"),
    (range(12, 14), "Haryana"),
    (range(14, 17), "Punjab"),
    (range(17, 18), "Himachal Pradesh"),
    (range(18, 20), "Jammu and Kashmir"),
    (range(20, 29), "Uttar Pradesh"),
    (range(30, 35), "Rajasthan"),
    (range(36, 40), "Gujarat"),
    (range(40, 45), "Maharashtra"),
    (range(45, 49), "Madhya Pradesh"),
    (range(49, 50), "Chhattisgarh"),
    (range(50, 51), "Telangana"),
    (range(51, 54), "Andhra Pradesh"),
    (range(56, 60), "Karnataka"),
    (range(60, 65), "Tamil Nadu"),
    (range(67, 70), "Kerala"),
    (range(70, 75), "West Bengal"),
    (range(75, 78), "Odisha"),
    (range(78, 79), "Assam"),
    (range(79, 80), "North Eastern"),
    (range(80, 82), "Bihar"),
    (range(82, 84), "Jharkhand"),
    (range(84, 86), "Bihar"),
)


def lookup_prefix(
    pincode: str,
    district_prefixes: Mapping[str, Tuple[str, str]] = DISTRICT_PREFIXES,
    state_prefixes: Mapping[str, str] = STATE_PREFIXES,
) -> Optional[Tuple[str, Optional[str]]]:
    """
    Derive ``(state, district)`` from a pincode's leading digits.

    The three-digit table wins over the two-digit table; a two-digit hit
    carries no district.
    """
    district_hit = district_prefixes.get(pincode[:3])
    if district_hit is not None:
        return district_hit

    state = state_prefixes.get(pincode[:2])
    if state is not None:
        return state, None

    return None
