from __future__ import annotations

import random

from identity_resolution.datasets.profiles import (
    DONOR_DIRECT_SOURCE,
    GIVEBUTTER_SOURCE,
    KEAP_SOURCE,
    SOURCE_SCHEMAS,
    STRIPE_SOURCE,
)
from identity_resolution.models import StagingRecord

_FIRST_NAMES = [
    "Dominique",
    "Luke",
    "Alex",
    "Sofia",
    "Maya",
    "Daniel",
    "Emma",
    "Chris",
    "Olivia",
    "Noah",
]
_LAST_NAMES = [
    "Smith",
    "Johnson",
    "Brown",
    "Taylor",
    "Wilson",
    "Davies",
    "Martin",
    "Thomas",
]
_STREETS = [
    "Oak Street",
    "Maple Road",
    "King Avenue",
    "River Lane",
    "Elm Street",
    "Station Road",
]
_CITIES = [("Austin", "TX"), ("Denver", "CO"), ("Portland", "OR"), ("Columbus", "OH"), ("Raleigh", "NC")]
_DOMAINS = ["gmail.com", "outlook.com", "yahoo.com", "example.com"]

RawRow = tuple[str, dict[str, str]]


class ReferenceDatasetGenerator:
    """Generate synthetic source exports (with intentional cross-system dupes) for tests and benchmarks.

    Every person gets a CRM contact. A share of them reappear in another
    system: as a donor account, as a donation-platform contact that points
    back at the CRM id, or as a payment customer with a reformatted email.
    """

    def __init__(self, seed: int = 7) -> None:
        self._rng = random.Random(seed)

    def generate(self, size: int, duplicate_rate: float = 0.15) -> list[StagingRecord]:
        records: list[StagingRecord] = []
        for source_id, row in self.generate_rows(size, duplicate_rate):
            record = SOURCE_SCHEMAS[source_id].to_staging(row, record_id=f"stg_{len(records):07d}")
            if record is not None:
                records.append(record)
        return records

    def generate_rows(self, size: int, duplicate_rate: float = 0.15) -> list[RawRow]:
        if size <= 0:
            return []

        unique_count = int(size * (1.0 - duplicate_rate))
        unique_count = max(1, min(unique_count, size))

        profiles = [self._profile(i) for i in range(unique_count)]
        rows: list[RawRow] = [(KEAP_SOURCE, self._keap_row(profile)) for profile in profiles]

        serial = 0
        while len(rows) < size:
            profile = self._rng.choice(profiles)
            target = self._rng.choice([DONOR_DIRECT_SOURCE, GIVEBUTTER_SOURCE, STRIPE_SOURCE])
            rows.append((target, self._duplicate_row(target, profile, serial)))
            serial += 1

        self._rng.shuffle(rows)
        return rows

    def _profile(self, idx: int) -> dict[str, str]:
        first_name = self._rng.choice(_FIRST_NAMES)
        last_name = self._rng.choice(_LAST_NAMES)
        city, state = self._rng.choice(_CITIES)
        email_local = f"{first_name}.{last_name}{idx % 97}".lower()

        return {
            "keap_id": str(10000 + idx),
            "first_name": first_name,
            "last_name": last_name,
            "address_line1": f"{1 + (idx % 180)} {self._rng.choice(_STREETS)}",
            "city": city,
            "state": state,
            "zip": f"{70000 + (idx % 9999):05d}",
            "email": f"{email_local}@{self._rng.choice(_DOMAINS)}",
            "phone": f"512{idx % 10000000:07d}",
        }

    def _keap_row(self, profile: dict[str, str]) -> dict[str, str]:
        return {
            "Id": profile["keap_id"],
            "FirstName": profile["first_name"],
            "LastName": profile["last_name"],
            "Email": profile["email"],
            "Phone1": _dashed_phone(profile["phone"]),
            "StreetAddress1": profile["address_line1"],
            "City": profile["city"],
            "State": profile["state"],
            "PostalCode": profile["zip"],
            "Country": "US",
        }

    def _duplicate_row(self, target: str, profile: dict[str, str], serial: int) -> dict[str, str]:
        if target == DONOR_DIRECT_SOURCE:
            return {
                "AccountNumber": f"DD{serial:06d}",
                "FirstName": self._name_variant(profile["first_name"]),
                "LastName": profile["last_name"].upper(),
                "PhoneNumber": f"+1 ({profile['phone'][:3]}) {profile['phone'][3:6]}-{profile['phone'][6:]}",
                "AddressLine1": _abbreviate_street(profile["address_line1"]),
                "City": profile["city"],
                "State": profile["state"],
                "ZipPostal": f"{profile['zip']}-0001",
            }
        if target == GIVEBUTTER_SOURCE:
            return {
                "Givebutter Contact ID": f"GB{serial:06d}",
                "Keap Number": profile["keap_id"],
                "First Name": profile["first_name"],
                "Last Name": profile["last_name"],
                "Primary Email": self._rng.choice(["", profile["email"]]),
                "Zip Code": profile["zip"],
            }
        return {
            "id": f"cus_{serial:06d}",
            "name": f"{profile['first_name']} {profile['last_name']}",
            "email": self._email_variant(profile["email"]),
        }

    def _email_variant(self, email: str) -> str:
        local, domain = email.split("@", maxsplit=1)
        variant = self._rng.choice(["case", "padded", "plain"])
        if variant == "case":
            return f"{local.capitalize()}@{domain.upper()}"
        if variant == "padded":
            return f"  {email} "
        return email

    def _name_variant(self, first_name: str) -> str:
        lowered = first_name.lower()
        expansion = {"alex": "Alexander", "chris": "Christopher", "dan": "Daniel"}
        if lowered in expansion:
            return expansion[lowered]
        if len(first_name) > 4:
            return first_name[:3]
        return first_name


def _dashed_phone(digits: str) -> str:
    return f"{digits[:3]}-{digits[3:6]}-{digits[6:]}"


def _abbreviate_street(line: str) -> str:
    return line.replace("Street", "St.").replace("Road", "Rd").replace("Avenue", "Ave").replace("Lane", "Ln")
