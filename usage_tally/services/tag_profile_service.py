# Copyright (c) 2025-2026 OptimNow. All Rights Reserved.
# Licensed under the Apache License, Version 2.0.
# See LICENSE file in the project root for full license information.

"""Tag profile service for resolving product tags and service-type defaults."""

from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from ..models.tag_profile import TagMappingValueType, TagMetaData, TagProfile


class TagProfileValidationError(Exception):
    """Raised when the tag profile configuration is invalid."""

    pass


class TagProfileNotFoundError(Exception):
    """Raised when the tag profile file is not found."""

    pass


class TagProfileService:
    """
    Resolves product tags for events.

    This service handles:
    - Loading the tag profile from a YAML file (or accepting one directly)
    - Looking up tags by system role and by engineering product id
    - Looking up defaults by service type and by product tag
    """

    def __init__(
        self,
        profile: Optional[TagProfile] = None,
        profile_path: str | Path | None = None,
    ):
        """
        Initialize the TagProfileService.

        Args:
            profile: An already loaded profile. Takes precedence over the path.
            profile_path: Path to the tag profile YAML file
        """
        self._profile_path = Path(profile_path) if profile_path else Path("config/tag_profile.yaml")
        self._profile: Optional[TagProfile] = None
        self._tags_by_role: dict[str, set[str]] = {}
        self._tags_by_eng_id: dict[str, set[str]] = {}
        self._metadata_by_service_type: dict[str, TagMetaData] = {}
        self._metadata_by_tag: dict[str, TagMetaData] = {}
        if profile is not None:
            self._index(profile)

    def load_profile(self, profile_path: str | Path | None = None) -> TagProfile:
        """
        Load the tag profile from a YAML file.

        Args:
            profile_path: Optional path to the profile. If None, uses the instance path.

        Returns:
            TagProfile: The loaded and validated profile

        Raises:
            TagProfileNotFoundError: If the file doesn't exist
            TagProfileValidationError: If the file is not valid YAML or the structure is invalid
        """
        path = Path(profile_path) if profile_path else self._profile_path

        if not path.exists():
            raise TagProfileNotFoundError(f"Tag profile file not found: {path}")

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise TagProfileValidationError(f"Invalid YAML in tag profile {path}: {e}") from e

        try:
            profile = TagProfile(**data)
        except (ValidationError, TypeError) as e:
            raise TagProfileValidationError(f"Invalid tag profile structure in {path}: {e}") from e

        self._index(profile)
        return profile

    def _index(self, profile: TagProfile) -> None:
        tags_by_role: dict[str, set[str]] = {}
        tags_by_eng_id: dict[str, set[str]] = {}
        for mapping in profile.tag_mappings:
            target = tags_by_role if mapping.value_type == TagMappingValueType.ROLE else tags_by_eng_id
            target.setdefault(mapping.value, set()).update(mapping.tags)

        metadata_by_service_type: dict[str, TagMetaData] = {}
        metadata_by_tag: dict[str, TagMetaData] = {}
        for meta in profile.tag_metadata:
            if meta.service_type:
                metadata_by_service_type.setdefault(meta.service_type, meta)
            for tag in meta.tags:
                metadata_by_tag.setdefault(tag, meta)

        self._profile = profile
        self._tags_by_role = tags_by_role
        self._tags_by_eng_id = tags_by_eng_id
        self._metadata_by_service_type = metadata_by_service_type
        self._metadata_by_tag = metadata_by_tag

    def get_profile(self) -> TagProfile:
        """Get the current profile, loading it from disk on first use."""
        if self._profile is None:
            self.load_profile()
        return self._profile

    def tags_for_role(self, role: Optional[str]) -> set[str]:
        self.get_profile()
        if not role:
            return set()
        return set(self._tags_by_role.get(role, set()))

    def tags_for_eng_product(self, product_id: str) -> set[str]:
        self.get_profile()
        return set(self._tags_by_eng_id.get(str(product_id), set()))

    def metadata_for_service_type(self, service_type: str) -> Optional[TagMetaData]:
        self.get_profile()
        return self._metadata_by_service_type.get(service_type)

    def metadata_for_tag(self, tag: str) -> Optional[TagMetaData]:
        self.get_profile()
        return self._metadata_by_tag.get(tag)

    def is_unlimited(self, tag: str) -> bool:
        meta = self.metadata_for_tag(tag)
        return meta is not None and meta.unlimited_usage
