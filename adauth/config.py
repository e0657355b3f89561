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
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Tuple

from adauth.settings import ACCESS_MODE_UNRESTRICTED


@dataclass(frozen=True)
class DirectoryConfiguration:
    """
    Read-only settings for one Active Directory provider.

    `verify_service_account` makes login bind the service account before the
    user bind, which is how a configuration is tested before being enabled.
    `allow_unauthenticated_lookup` lets group resolution and principal lookup
    fall back to principals built from the DN when the service account is
    rejected with invalid credentials.

    When no server answers within `connection_timeout`, connecting fails after
    one pass over `servers` plus a one second pool delay.
    """

    enabled: bool = True
    servers: Tuple[str, ...] = ()
    port: int = 389
    tls: bool = False
    start_tls: bool = False
    connection_timeout: int = 5000  # milliseconds
    certificate: str = ""

    service_account_username: str = ""
    service_account_password: str = ""
    default_login_domain: str = ""

    user_search_base: str = ""
    group_search_base: str = ""

    user_object_class: str = "person"
    user_name_attribute: str = "name"
    user_login_attribute: str = "sAMAccountName"
    user_search_attribute: str = "sAMAccountName|sn|givenName"
    user_enabled_attribute: str = "userAccountControl"
    user_disabled_bit_mask: int = 2

    group_object_class: str = "group"
    group_name_attribute: str = "name"
    group_search_attribute: str = "sAMAccountName"

    access_mode: str = ACCESS_MODE_UNRESTRICTED
    allowed_principal_ids: Tuple[str, ...] = field(default_factory=tuple)

    verify_service_account: bool = False
    allow_unauthenticated_lookup: bool = True

    @property
    def group_base(self) -> str:
        return self.group_search_base or self.user_search_base

    @property
    def user_search_attributes(self) -> List[str]:
        return [a.strip() for a in self.user_search_attribute.split("|") if a.strip()]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DirectoryConfiguration":
        """Build a configuration from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key not in known or value is None:
                continue
            if key in ("servers", "allowed_principal_ids"):
                value = tuple(value)
            values[key] = value
        return cls(**values)
