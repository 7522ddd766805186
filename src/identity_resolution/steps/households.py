from __future__ import annotations

import logging
from collections import Counter, defaultdict
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field

from identity_resolution.models import Household, HouseholdMember, HouseholdRole, Person, StagingRecord
from identity_resolution.steps.normalize import household_key
from identity_resolution.steps.synthesis import new_id

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class HouseholdOutput:
    households: list[Household] = field(default_factory=list)
    members: list[HouseholdMember] = field(default_factory=list)
    multi_person_count: int = 0


class HouseholdAssigner:
    """Groups resolved persons who share a street address and surname prefix.

    This models who lives together, not who is the same person: only the
    address + surname key is consulted, and every person ends up in exactly
    one household.
    """

    def __init__(self, id_factory: Callable[[], str] = new_id) -> None:
        self._id_factory = id_factory

    def assign(
        self,
        persons: Sequence[Person],
        best_by_person: Mapping[str, StagingRecord],
    ) -> HouseholdOutput:
        output = HouseholdOutput()
        groups: dict[str, list[Person]] = defaultdict(list)
        for person in persons:
            best = best_by_person[person.id]
            key = household_key(best.address_line1, best.city, best.state, person.last_name)
            if key:
                groups[key].append(person)

        housed: set[str] = set()
        for members in groups.values():
            if len(members) < 2:
                continue
            household = Household(id=self._id_factory(), name=f"The {_most_common_surname(members)} Household")
            output.households.append(household)
            output.multi_person_count += 1
            for position, person in enumerate(members):
                role = HouseholdRole.PRIMARY if position == 0 else HouseholdRole.MEMBER
                output.members.append(HouseholdMember(household_id=household.id, person_id=person.id, role=role))
                housed.add(person.id)

        for person in persons:
            if person.id in housed:
                continue
            household = Household(id=self._id_factory(), name=_singleton_name(person))
            output.households.append(household)
            output.members.append(
                HouseholdMember(household_id=household.id, person_id=person.id, role=HouseholdRole.PRIMARY)
            )

        logger.info(
            "Assigned %d households (%d shared by two or more persons)",
            len(output.households),
            output.multi_person_count,
        )
        return output


def _most_common_surname(members: Sequence[Person]) -> str:
    counts = Counter(person.last_name for person in members if person.last_name)
    # Counter.most_common keeps first-inserted order among equal counts.
    return counts.most_common(1)[0][0]


def _singleton_name(person: Person) -> str:
    if person.last_name:
        return f"The {person.last_name} Household"
    if person.display_name:
        return f"{person.display_name} Household"
    return "Unknown Household"
