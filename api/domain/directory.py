# SPDX-License-Identifier: Apache-2.0

"""
Public directory logic for service search and browsing.

This module contains pure functions that build MongoDB filters for keyword
and location search, group services by the organization that offers them,
and derive the location lists used by search filters.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

TOP_ORGANIZATIONS = 12
SEARCH_FIELDS = ("serviceName", "documents", "procedure")


@dataclass
class LocationFilter:
    """Optional province/district/municipality filter."""
    province: Optional[str] = None
    district: Optional[str] = None
    municipality: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.province or self.district or self.municipality)

    def parts(self) -> Dict[str, str]:
        return {
            name: value.strip()
            for name, value in (
                ("province", self.province),
                ("district", self.district),
                ("municipality", self.municipality)
            )
            if value and value.strip()
        }


@dataclass
class LocationOptions:
    """Distinct location values available for filtering."""
    provinces: List[str] = field(default_factory=list)
    districts: List[str] = field(default_factory=list)
    municipalities: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "provinces": self.provinces,
            "districts": self.districts,
            "municipalities": self.municipalities
        }


def _contains(term: str) -> Dict[str, str]:
    return {"$regex": re.escape(term), "$options": "i"}


def build_search_query(keyword: Optional[str]) -> Dict[str, Any]:
    """
    Build a service filter matching a keyword in name, documents or procedure.

    The keyword is matched literally and case-insensitively; regex
    metacharacters typed by citizens carry no special meaning.
    """
    if not keyword or not keyword.strip():
        return {}

    term = keyword.strip()
    return {"$or": [{name: _contains(term)} for name in SEARCH_FIELDS]}


def matches_location(location: Optional[Dict[str, Any]], location_filter: LocationFilter) -> bool:
    """
    Check an organization's location against a filter.

    Each supplied part must equal the organization's value ignoring case.
    Organizations without a location never match a non-empty filter.
    """
    if location_filter.is_empty():
        return True
    if not location:
        return False

    for name, wanted in location_filter.parts().items():
        actual = location.get(name)
        if not isinstance(actual, str) or actual.lower() != wanted.lower():
            return False
    return True


def filter_by_owner_location(
    services: Iterable[Dict[str, Any]],
    location_filter: LocationFilter,
    owner_key: str = "userId"
) -> List[Dict[str, Any]]:
    """Keep services whose populated owner matches the location filter."""
    results = []
    for service in services:
        owner = service.get(owner_key)
        location = owner.get("location") if isinstance(owner, dict) else None
        if matches_location(location, location_filter):
            results.append(service)
    return results


def build_bundle_query(location_filter: LocationFilter) -> Dict[str, Any]:
    """Active bundles whose location contains each supplied part, ignoring case."""
    query: Dict[str, Any] = {"isActive": True}
    for name, value in location_filter.parts().items():
        query[f"location.{name}"] = _contains(value)
    return query


def group_by_organization(
    services: Iterable[Dict[str, Any]],
    limit: int = TOP_ORGANIZATIONS,
    owner_key: str = "userId"
) -> List[Dict[str, Any]]:
    """
    Group services under the organization that offers them.

    Args:
        services: Service documents with the owning user populated
        limit: Maximum number of organizations returned
        owner_key: Field holding the populated owner

    Returns:
        Organizations with their service summaries, most services first
    """
    groups: Dict[str, Dict[str, Any]] = {}

    for service in services:
        owner = service.get(owner_key)
        if not isinstance(owner, dict):
            continue

        name = owner.get("organizationName")
        if name not in groups:
            groups[name] = {
                "organizationName": name,
                "location": owner.get("location"),
                "services": [],
                "totalServices": 0
            }

        group = groups[name]
        group["services"].append({
            "_id": service.get("_id"),
            "serviceName": service.get("serviceName"),
            "estimatedTime": service.get("estimatedTime"),
            "charge": service.get("charge"),
            "tokensEnabled": service.get("tokensEnabled", False)
        })
        group["totalServices"] += 1

    # sorted() is stable, so ties keep first-seen order
    ranked = sorted(groups.values(), key=lambda g: g["totalServices"], reverse=True)
    return ranked[:limit]


def collect_locations(locations: Iterable[Optional[Dict[str, Any]]]) -> LocationOptions:
    """Sorted distinct provinces, districts and municipalities."""
    provinces, districts, municipalities = set(), set(), set()

    for location in locations:
        if not location:
            continue
        if location.get("province"):
            provinces.add(location["province"])
        if location.get("district"):
            districts.add(location["district"])
        if location.get("municipality"):
            municipalities.add(location["municipality"])

    return LocationOptions(
        provinces=sorted(provinces),
        districts=sorted(districts),
        municipalities=sorted(municipalities)
    )


def unique_ids(ids: Iterable[str]) -> List[str]:
    """Drop repeated identifiers, keeping first occurrence order."""
    seen = set()
    result = []
    for value in ids:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


def missing_ids(requested: Iterable[str], found: Iterable[str]) -> List[str]:
    """Identifiers that were requested but not found."""
    found_set = {str(value) for value in found}
    return [value for value in unique_ids(requested) if value not in found_set]
