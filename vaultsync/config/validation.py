"""
Configuration validation for storage backend config fields.
"""

import re
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

if TYPE_CHECKING:
    from ..storage.config_fields import StorageConfigField


class ConfigValidator:
    """Validates caller-supplied values against field descriptors."""

    @staticmethod
    def validate_fields(
        fields: Sequence["StorageConfigField"],
        values: Dict[str, Optional[str]]
    ) -> List[str]:
        """Validate config values, returning a list of error messages."""
        errors = []

        for config_field in fields:
            value = values.get(config_field.id)
            if value is None or value == '':
                if config_field.required:
                    errors.append(f"Field '{config_field.id}' is required")
                continue

            errors.extend(ConfigValidator._validate_pattern(config_field, value))
            errors.extend(ConfigValidator._validate_option(config_field, value))

        return errors

    @staticmethod
    def _validate_pattern(config_field: "StorageConfigField", value: str) -> List[str]:
        """Patterns match the whole value, as HTML input patterns do."""
        errors = []

        if config_field.pattern and not re.fullmatch(config_field.pattern, value):
            errors.append(f"Field '{config_field.id}' has an invalid format")

        return errors

    @staticmethod
    def _validate_option(config_field: "StorageConfigField", value: str) -> List[str]:
        errors = []

        if config_field.options and value not in config_field.options:
            errors.append(
                f"Field '{config_field.id}' must be one of: {', '.join(config_field.options)}"
            )

        return errors
