"""
Feature Flags System
Environment-based control over the optional hierarchy service features
"""

import os
from typing import Dict, List
from dataclasses import dataclass
from enum import Enum

from fastapi import HTTPException


class Environment(Enum):
    DEVELOPMENT = "development"
    QA = "qa"
    STAGING = "staging"
    PRODUCTION = "production"


ALL_ENVIRONMENTS = [
    Environment.DEVELOPMENT,
    Environment.QA,
    Environment.STAGING,
    Environment.PRODUCTION,
]


@dataclass
class FeatureFlag:
    name: str
    enabled: bool
    description: str
    environments: List[Environment]


class FeatureFlagService:
    """Service for managing feature flags"""

    def __init__(self):
        self.current_environment = self._get_current_environment()
        self.flags = self._initialize_flags()

    def _get_current_environment(self) -> Environment:
        env_name = os.getenv('ENVIRONMENT', 'development').lower()
        try:
            return Environment(env_name)
        except ValueError:
            return Environment.DEVELOPMENT

    def _initialize_flags(self) -> Dict[str, FeatureFlag]:
        flags = {
            'bulk_operations': FeatureFlag(
                name='bulk_operations',
                enabled=True,
                description='Enable bulk mutations over selected courses',
                environments=ALL_ENVIRONMENTS,
            ),
            'spreadsheet_import': FeatureFlag(
                name='spreadsheet_import',
                enabled=True,
                description='Enable course import from xlsx/csv files',
                environments=ALL_ENVIRONMENTS,
            ),
            'auto_create_hierarchy': FeatureFlag(
                name='auto_create_hierarchy',
                enabled=True,
                description='Create missing programs, folders and lists during import',
                environments=[Environment.DEVELOPMENT, Environment.QA],
            ),
            'csv_export': FeatureFlag(
                name='csv_export',
                enabled=True,
                description='Allow csv in addition to xlsx for exports',
                environments=ALL_ENVIRONMENTS,
            ),
        }

        self._apply_environment_overrides(flags)
        return flags

    def _apply_environment_overrides(self, flags: Dict[str, FeatureFlag]) -> None:
        for flag in flags.values():
            flag.enabled = self.current_environment in flag.environments

            env_var_name = f"FEATURE_{flag.name.upper()}"
            env_override = os.getenv(env_var_name)
            if env_override is not None:
                flag.enabled = env_override.lower() in ('true', '1', 'yes', 'on')

    def is_enabled(self, flag_name: str) -> bool:
        flag = self.flags.get(flag_name)
        if flag is None:
            return False
        return flag.enabled

    def get_enabled_flags(self) -> List[str]:
        return [name for name, flag in self.flags.items() if flag.enabled]

    def get_environment_info(self) -> Dict:
        return {
            'current_environment': self.current_environment.value,
            'total_flags': len(self.flags),
            'enabled_flags': len(self.get_enabled_flags()),
            'flag_summary': {name: flag.enabled for name, flag in self.flags.items()}
        }


# Global feature flag service instance
feature_flags = FeatureFlagService()


def is_feature_enabled(flag_name: str) -> bool:
    return feature_flags.is_enabled(flag_name)


def require_feature(flag_name: str):
    """Build a FastAPI dependency that 404s when ``flag_name`` is off"""
    async def dependency() -> bool:
        if not is_feature_enabled(flag_name):
            raise HTTPException(
                status_code=404,
                detail=f"Feature '{flag_name}' is not available"
            )
        return True
    return dependency
