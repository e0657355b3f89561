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
from dataclasses import replace
from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from adauth.config import DirectoryConfiguration
from adauth.ldap.errors import UnauthorizedError
from adauth.ldap.ldap_bind import bind_service_account
from adauth.ldap.ldap_principal import Principal, has_permission, to_principal
from adauth.ldap.ldap_query import group_dn_query
from adauth.ldap.ldap_search import RawEntry, search
from adauth.settings import GROUP_BATCH_SIZE, GROUP_SCOPE


def batched(items: Sequence[str], size: int = GROUP_BATCH_SIZE) -> Iterator[List[str]]:
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class SkipPolicy:
    """
    Records entries dropped while mapping a batch of search results.

    A skipped entry is logged and counted; it never fails the batch.
    """

    def __init__(self):
        self.reasons: List[Tuple[str, str]] = []

    @property
    def skipped(self) -> int:
        return len(self.reasons)

    def skip(self, dn: str, reason: str):
        logging.error(f"Skipping directory entry {dn}: {reason}")
        self.reasons.append((dn, reason))


def map_entries(entries: Sequence[RawEntry], scope: str, config: DirectoryConfiguration,
                skip_policy: SkipPolicy,
                permission_check: Optional[Callable] = has_permission) -> List[Principal]:
    principals = []
    for entry in entries:
        if permission_check is not None and not permission_check(entry.attributes, config):
            skip_policy.skip(entry.dn, "permission denied")
            continue
        principal = to_principal(entry.attributes, entry.dn, scope, config)
        if principal is None:
            skip_policy.skip(entry.dn, "not a user or group entry")
            continue
        principals.append(principal)
    return principals


class GroupResolver:
    """Resolves a user's member-of references into group principals."""

    def __init__(self, config: DirectoryConfiguration, skip_policy: Optional[SkipPolicy] = None,
                 permission_check: Callable = has_permission):
        self.config = config
        self.skip_policy = skip_policy
        self.permission_check = permission_check

    def resolve(self, member_of: Sequence[str], connection) -> List[Principal]:
        """
        Look up every group DN in `member_of` using `connection`.

        Batches are resolved one after another; any failing batch aborts the
        whole resolution. Without an injected skip policy each call records
        its skips in a fresh one.
        """
        skip_policy = self.skip_policy if self.skip_policy is not None else SkipPolicy()
        principals = []
        for batch in batched(member_of):
            principals.extend(self._resolve_batch(batch, connection, skip_policy))
        return principals

    def _resolve_batch(self, batch: List[str], connection, skip_policy: SkipPolicy) -> List[Principal]:
        try:
            bind_service_account(connection, self.config)
        except UnauthorizedError:
            if not self.config.allow_unauthenticated_lookup:
                raise
            logging.warning(f"Service account bind rejected, using {len(batch)} group DNs without directory lookup")
            return [Principal.from_dn(GROUP_SCOPE, dn, is_member_of=True) for dn in batch]

        query = group_dn_query(batch, self.config)
        logging.debug(f"AD: Query for pulling user's groups: {query.filter}")
        entries = search(connection, query)

        principals = map_entries(entries, GROUP_SCOPE, self.config, skip_policy, self.permission_check)
        return [replace(p, is_member_of=True) for p in principals]
