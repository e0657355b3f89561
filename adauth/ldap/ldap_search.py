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
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ldap3.core.exceptions import LDAPException, LDAPNoSuchObjectResult
from ldap3.core.results import RESULT_NO_SUCH_OBJECT
from ldap3.utils.ciDict import CaseInsensitiveDict

from adauth.ldap.errors import NotFoundError, ServerError
from adauth.ldap.ldap_query import SearchQuery
from adauth.settings import SEARCH_PAGE_SIZE

SEARCH_RESULT_ENTRY = "searchResEntry"


@dataclass(frozen=True)
class RawEntry:
    """A directory entry as returned by a search, attribute names case-insensitive."""

    dn: str
    attributes: CaseInsensitiveDict = field(default_factory=CaseInsensitiveDict)

    def values(self, name: str) -> List[str]:
        return list(self.attributes.get(name) or [])

    def first(self, name: str) -> Optional[str]:
        values = self.values(name)
        return values[0] if values else None


def make_attributes(data: Dict[str, List]) -> CaseInsensitiveDict:
    attributes = CaseInsensitiveDict()
    for name, values in (data or {}).items():
        if not isinstance(values, (list, tuple)):
            values = [values]
        attributes[name] = [_decode(v) for v in values]
    return attributes


def to_raw_entry(response: Dict) -> RawEntry:
    return RawEntry(dn=response.get("dn", ""), attributes=make_attributes(response.get("raw_attributes")))


def search(connection, query: SearchQuery, paged: bool = False) -> List[RawEntry]:
    """
    Run `query` and return its entries.

    Paged searches fetch SEARCH_PAGE_SIZE entries per round-trip and treat a
    missing base as an empty result. A missing base on a non-paged search
    raises NotFoundError; every other failure raises ServerError.
    """
    logging.debug(f"LDAP search base={query.base} scope={query.scope} filter={query.filter} paged={paged}")
    try:
        if paged:
            responses = connection.search_paged(
                query.base, query.filter, query.scope, list(query.attributes), SEARCH_PAGE_SIZE
            )
        else:
            responses = connection.search(query.base, query.filter, query.scope, list(query.attributes))
    except LDAPException as e:
        if not _is_no_such_object(e):
            raise ServerError(f"server returned error for search {query.base} {query.filter}", e) from e
        if paged:
            logging.debug(f"Search base {query.base} does not exist, no entries returned")
            return []
        raise NotFoundError(f"{query.base} not found", e) from e

    return [to_raw_entry(r) for r in responses if r.get("type") == SEARCH_RESULT_ENTRY]


def _is_no_such_object(error: Exception) -> bool:
    if isinstance(error, LDAPNoSuchObjectResult):
        return True
    return getattr(error, "result", None) == RESULT_NO_SUCH_OBJECT


def _decode(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
