# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Mapping of normalized identity-provider claims to base permissions and departments.
"""

import logging
from typing import Dict, List, Optional, Tuple

from ..common.utils import normalize_name, unique_sorted
from ..core.config import EngineConfig
from ..core.types import CorporateConfig, NormalizedProfile, Provider


logger = logging.getLogger(__name__)

# Group names may arrive already prefixed with the provider they came from.
PROVIDER_PREFIXES: Dict[Provider, Tuple[str, ...]] = {
    Provider.GOOGLE: ("google_",),
    Provider.MICROSOFT: ("microsoft_", "azure_"),
}


class GroupPermissionMapper:
    """Derives base permissions from group/role claims using the per-provider tables."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    def groups_for_profile(self, profile: NormalizedProfile, provider: Provider) -> List[str]:
        """Group-like claims of a profile. Microsoft job title and department also act as groups."""
        groups = list(profile.groups) + list(profile.roles)
        if provider == Provider.MICROSOFT:
            if profile.job_title:
                groups.append(profile.job_title)
            if profile.department:
                groups.append(profile.department)
        return [g for g in groups if isinstance(g, str) and g.strip()]

    def normalize_group(self, group: str, provider: Provider) -> str:
        name = normalize_name(group)
        for prefix in PROVIDER_PREFIXES.get(provider, ()):
            if name.startswith(prefix):
                return name[len(prefix):]
        return name

    def matched_groups(self, profile: NormalizedProfile, provider: Provider) -> Dict[str, List[str]]:
        """Normalized group name to the permissions it grants, for every group that maps."""
        table = self.config.group_mappings.get(provider, {})
        matched = {}
        for group in self.groups_for_profile(profile, provider):
            normalized = self.normalize_group(group, provider)
            if normalized in table:
                matched[normalized] = list(table[normalized])
        return matched

    def permissions_for_profile(self, profile: NormalizedProfile, provider: Provider) -> List[str]:
        matched = self.matched_groups(profile, provider)
        permissions = unique_sorted(p for perms in matched.values() for p in perms)
        logger.debug("Profile groups %s mapped to %d permissions for %s",
                     sorted(matched), len(permissions), provider.value)
        return permissions

    def department_for_profile(self, profile: NormalizedProfile, corporate_config: Optional[CorporateConfig],
                               provider: Optional[Provider] = None) -> Optional[str]:
        """
        Department id for a profile under a client's department mapping.

        Exact matches are tried first on department, job title and email.
        For Microsoft, a case-insensitive containment match is tried next.
        """
        if corporate_config is None or not corporate_config.department_mapping:
            return None

        mapping = corporate_config.department_mapping
        fields = [f for f in (profile.department, profile.job_title, profile.email) if f]

        for value in fields:
            if value in mapping:
                logger.info("DEPARTMENT_MAPPING_SUCCESS client=%s mapped_to=%s",
                            corporate_config.client_name, mapping[value])
                return mapping[value]

        if provider == Provider.MICROSOFT:
            for value in fields:
                lowered = value.lower()
                for key, department in mapping.items():
                    key_lowered = key.lower()
                    if key_lowered in lowered or lowered in key_lowered:
                        logger.info("DEPARTMENT_MAPPING_PARTIAL client=%s matched_key=%s mapped_to=%s",
                                    corporate_config.client_name, key, department)
                        return department

        logger.info("DEPARTMENT_MAPPING_FAILED client=%s", corporate_config.client_name)
        return None
