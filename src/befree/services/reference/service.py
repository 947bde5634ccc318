from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from src.befree.domain.errors import ValidationError

# Region -> constituency -> facilities offered on the referral consent page.
DEFAULT_FACILITIES: Dict[str, Dict[str, List[str]]] = {
    "Ohangwena": {
        "Eenhana": ["Eenhana clinic", "Eenhana District Hospital"],
        "Engela": ["Engela District Hospital", "Odibo Health Centre"],
        "Okongo": ["Okongo District Hospital", "Okongo clinic"],
    },
    "Oshana": {
        "Oshakati East": ["Oshakati Intermediate Hospital", "Oshakati clinic"],
        "Ongwediva": ["Ongwediva Health Centre"],
        "Ompundja": ["Ompundja clinic"],
    },
    "Khomas": {
        "Windhoek East": ["Windhoek Central Hospital"],
        "Katutura Central": ["Katutura Intermediate Hospital", "Katutura Health Centre"],
        "Samora Machel": ["Wanaheda clinic", "Okuryangava clinic"],
    },
    "Kavango East": {
        "Rundu Urban": ["Rundu Intermediate Hospital", "Rundu clinic"],
        "Ndiyona": ["Ndiyona clinic"],
    },
}


class ReferenceDataService:
    """Static lookup of where a referral can be routed to.

    The table is consulted by the consent page to constrain selections and,
    when routing validation is enabled, by the consent step itself to
    re-check the submitted region/constituency/facility triple.
    """

    def __init__(self, facilities: Optional[Mapping[str, Mapping[str, List[str]]]] = None) -> None:
        self._facilities = {
            region: {constituency: list(names) for constituency, names in constituencies.items()}
            for region, constituencies in (facilities or DEFAULT_FACILITIES).items()
        }

    def list_regions(self) -> List[str]:
        return sorted(self._facilities)

    def list_constituencies(self, region: str) -> List[str]:
        return sorted(self._facilities.get(region, {}))

    def list_facilities(self, region: str, constituency: str) -> List[str]:
        return list(self._facilities.get(region, {}).get(constituency, []))

    def validate_route(self, region: str, constituency: str, facility: str) -> None:
        """Raise ``ValidationError`` on the first field that breaks the chain."""

        if region not in self._facilities:
            raise ValidationError("Please select a valid region.", field="region")
        if constituency not in self._facilities[region]:
            raise ValidationError(
                f"{constituency} is not a constituency of {region}.",
                field="constituency",
            )
        if facility not in self._facilities[region][constituency]:
            raise ValidationError(
                f"{facility} is not a facility in {constituency}.",
                field="facility",
            )


@dataclass
class RoutingSelection:
    """Progressive region -> constituency -> facility selection.

    Choosing a region clears the constituency and facility; choosing a
    constituency clears the facility, because each level's valid options are
    determined by the level above.
    """

    region: Optional[str] = None
    constituency: Optional[str] = None
    facility: Optional[str] = None

    def select_region(self, region: str) -> "RoutingSelection":
        if region != self.region:
            self.constituency = None
            self.facility = None
        self.region = region
        return self

    def select_constituency(self, constituency: str) -> "RoutingSelection":
        if self.region is None:
            raise ValidationError("Select a region first.", field="region")
        if constituency != self.constituency:
            self.facility = None
        self.constituency = constituency
        return self

    def select_facility(self, facility: str) -> "RoutingSelection":
        if self.constituency is None:
            raise ValidationError("Select a constituency first.", field="constituency")
        self.facility = facility
        return self

    @property
    def complete(self) -> bool:
        return None not in (self.region, self.constituency, self.facility)


reference_data_service = ReferenceDataService()
