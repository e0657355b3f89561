#
#  Copyright 2024 The InfiniFlow Authors. All Rights Reserved.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
#
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, Iterable, Mapping, Optional

from ldap3.utils.ciDict import CaseInsensitiveDict

from adauth.config import DirectoryConfiguration
from adauth.ldap.ldap_search import make_attributes
from adauth.settings import OBJECT_CLASS_ATTRIBUTE, PROVIDER_NAME, SCOPES


@dataclass(frozen=True)
class Principal:
    """Normalized user or group identity, `id` is `{scope}://{dn}`."""

    id: str
    display_name: str
    login_name: str
    kind: str
    is_self: bool = False
    is_member_of: bool = False
    provider: str = PROVIDER_NAME

    def __post_init__(self):
        scope, sep, dn = self.id.partition("://")
        if not sep or scope not in SCOPES or not dn:
            raise ValueError(f"malformed principal id {self.id!r}")
        if self.kind not in SCOPES:
            raise ValueError(f"unknown principal kind {self.kind!r}")

    @property
    def scope(self) -> str:
        return self.id.partition("://")[0]

    @property
    def dn(self) -> str:
        return self.id.partition("://")[2]

    @classmethod
    def from_dn(cls, scope: str, dn: str, is_member_of: bool = False) -> "Principal":
        """Minimal principal for a DN that could not be read from the directory."""
        return cls(
            id=f"{scope}://{dn}",
            display_name=dn,
            login_name=dn,
            kind=scope,
            is_member_of=is_member_of,
        )

    def to_dict(self) -> Dict:
        return asdict(self)


class EntryKind(Enum):
    USER = "user"
    GROUP = "group"
    UNRECOGNIZED = "unrecognized"


def classify(object_classes: Iterable[str], config: DirectoryConfiguration) -> EntryKind:
    classes = {c.lower() for c in object_classes if c}
    if config.user_object_class.lower() in classes:
        return EntryKind.USER
    if config.group_object_class.lower() in classes:
        return EntryKind.GROUP
    return EntryKind.UNRECOGNIZED


def is_type(attributes: Mapping, object_class: str) -> bool:
    attrs = _as_attributes(attributes)
    return any(c.lower() == object_class.lower() for c in attrs.get(OBJECT_CLASS_ATTRIBUTE) or [])


def has_permission(attributes: Mapping, config: DirectoryConfiguration) -> bool:
    """
    False for user entries whose account-control flags carry the disabled bit.

    Non-user entries and entries without a parsable flag value are permitted.
    """
    attrs = _as_attributes(attributes)
    if not is_type(attrs, config.user_object_class):
        return True

    values = attrs.get(config.user_enabled_attribute) or []
    if not values or not values[0]:
        return True
    try:
        flags = int(values[0])
    except ValueError:
        return True

    mask = config.user_disabled_bit_mask
    return flags & mask != mask


def to_principal(attributes: Mapping, dn: str, scope: str,
                 config: DirectoryConfiguration) -> Optional[Principal]:
    """
    Map directory attributes to a Principal.

    Returns None when the entry is neither of the configured user object class
    nor of the group object class.
    """
    attrs = _as_attributes(attributes)
    kind = classify(attrs.get(OBJECT_CLASS_ATTRIBUTE) or [], config)

    if kind is EntryKind.USER:
        display_name = _first(attrs, config.user_name_attribute) or dn
        login_name = _first(attrs, config.user_login_attribute) or ""
    elif kind is EntryKind.GROUP:
        display_name = _first(attrs, config.group_name_attribute) or dn
        login_name = _first(attrs, config.user_login_attribute) or display_name
    else:
        logging.error(f"Failed to get attributes for {dn}: unrecognized object class")
        return None

    return Principal(
        id=f"{scope}://{dn}",
        display_name=display_name,
        login_name=login_name,
        kind=kind.value,
    )


def _first(attrs: CaseInsensitiveDict, name: str) -> Optional[str]:
    values = attrs.get(name) or []
    return values[0] if values else None


def _as_attributes(attributes: Mapping) -> CaseInsensitiveDict:
    if isinstance(attributes, CaseInsensitiveDict):
        return attributes
    return make_attributes(attributes)
