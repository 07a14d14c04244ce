"""
appforge.merger - Setup Requirement Merging
===========================================

Several features often need the same external setup: Firebase Analytics,
Crashlytics, and Push Notifications all read one ``GoogleService-Info.plist``.
The merger folds every resolved feature's credentials and build-setting keys
into two checklists in which each entry appears exactly once.

Collision policy: the first occurrence in resolver order wins and later
duplicates are dropped entirely, descriptions included. Because the resolver
lists dependencies first, prerequisite setup is always listed before the
setup of the features that build on it.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from appforge.models import BuildSetting, Credential, FeatureManifest


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MergedRequirements:
    """
    De-duplicated setup checklists for a resolved feature set.

    Attributes
    ----------
    credentials : tuple[Credential, ...]
        Secrets to supply, unique by name.

    build_settings : tuple[BuildSetting, ...]
        Configuration values to fill in, unique by key.
    """

    credentials: tuple[Credential, ...] = ()
    build_settings: tuple[BuildSetting, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.credentials and not self.build_settings


def merge(resolved_features: Iterable[FeatureManifest]) -> MergedRequirements:
    """
    Merge the setup requirements of resolved features.

    Parameters
    ----------
    resolved_features : Iterable[FeatureManifest]
        Manifests in resolver order.

    Returns
    -------
    MergedRequirements
        Credentials unique by ``name`` and build settings unique by ``key``,
        each in first-occurrence order.
    """
    credentials: dict[str, Credential] = {}
    build_settings: dict[str, BuildSetting] = {}

    for manifest in resolved_features:
        for credential in manifest.required_credentials:
            if credential.name in credentials:
                logger.debug(
                    "Credential '%s' from '%s' already listed", credential.name, manifest.id
                )
                continue
            credentials[credential.name] = credential

        for setting in manifest.build_settings:
            if setting.key in build_settings:
                logger.debug(
                    "Build setting '%s' from '%s' already listed", setting.key, manifest.id
                )
                continue
            build_settings[setting.key] = setting

    return MergedRequirements(
        credentials=tuple(credentials.values()),
        build_settings=tuple(build_settings.values()),
    )
