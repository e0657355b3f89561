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
"""
Search filter construction.

Every value coming from a caller or from the directory is passed through
`escape_filter_chars` before it is interpolated into a filter.
"""
from dataclasses import dataclass
from typing import List, Sequence, Tuple

from ldap3 import BASE, SUBTREE
from ldap3.utils.conv import escape_filter_chars

from adauth.config import DirectoryConfiguration
from adauth.ldap.ldap_bind import get_sam_account_name
from adauth.settings import (
    DISTINGUISHED_NAME_ATTRIBUTE,
    GROUP_SCOPE,
    MEMBER_OF_ATTRIBUTE,
    OBJECT_CLASS_ATTRIBUTE,
    USER_SCOPE,
)


@dataclass(frozen=True)
class SearchQuery:
    base: str
    filter: str
    scope: str
    attributes: Tuple[str, ...]


def escape(value: str) -> str:
    return escape_filter_chars(value)


def object_class_filter(object_class: str) -> str:
    return f"({OBJECT_CLASS_ATTRIBUTE}={escape(object_class)})"


def user_search_attributes(config: DirectoryConfiguration) -> List[str]:
    return _unique([
        MEMBER_OF_ATTRIBUTE,
        OBJECT_CLASS_ATTRIBUTE,
        config.user_login_attribute,
        config.user_name_attribute,
        config.user_enabled_attribute,
    ])


def group_search_attributes(config: DirectoryConfiguration) -> List[str]:
    return _unique([
        MEMBER_OF_ATTRIBUTE,
        OBJECT_CLASS_ATTRIBUTE,
        config.user_login_attribute,
        config.group_name_attribute,
        config.group_search_attribute,
    ])


def user_login_filter(username: str, config: DirectoryConfiguration) -> str:
    sam_name = get_sam_account_name(username)
    return f"({config.user_login_attribute}={escape(sam_name)})"


def group_dn_filter(dns: Sequence[str], config: DirectoryConfiguration) -> str:
    if not dns:
        raise ValueError("group filter needs at least one distinguished name")
    clauses = "".join(f"({DISTINGUISHED_NAME_ATTRIBUTE}={escape(dn)})" for dn in dns)
    return f"(&{object_class_filter(config.group_object_class)}(|{clauses}))"


def user_search_filter(text: str, config: DirectoryConfiguration) -> str:
    value = escape(text)
    clauses = "".join(f"({attr}={value}*)" for attr in config.user_search_attributes)
    return f"(&{object_class_filter(config.user_object_class)}(|{clauses}))"


def group_search_filter(text: str, config: DirectoryConfiguration) -> str:
    value = escape(text)
    return f"(&({config.group_search_attribute}=*{value}*){object_class_filter(config.group_object_class)})"


def user_login_query(username: str, config: DirectoryConfiguration) -> SearchQuery:
    return SearchQuery(
        base=config.user_search_base,
        filter=user_login_filter(username, config),
        scope=SUBTREE,
        attributes=tuple(user_search_attributes(config)),
    )


def group_dn_query(dns: Sequence[str], config: DirectoryConfiguration) -> SearchQuery:
    return SearchQuery(
        base=config.group_base,
        filter=group_dn_filter(dns, config),
        scope=SUBTREE,
        attributes=tuple(group_search_attributes(config)),
    )


def user_text_query(text: str, config: DirectoryConfiguration) -> SearchQuery:
    return SearchQuery(
        base=config.user_search_base,
        filter=user_search_filter(text, config),
        scope=SUBTREE,
        attributes=tuple(user_search_attributes(config)),
    )


def group_text_query(text: str, config: DirectoryConfiguration) -> SearchQuery:
    return SearchQuery(
        base=config.group_base,
        filter=group_search_filter(text, config),
        scope=SUBTREE,
        attributes=tuple(group_search_attributes(config)),
    )


def object_query(dn: str, scope: str, config: DirectoryConfiguration) -> SearchQuery:
    """Base-scope query reading the single entry at `dn`."""
    if scope == USER_SCOPE:
        object_class, attributes = config.user_object_class, user_search_attributes(config)
    elif scope == GROUP_SCOPE:
        object_class, attributes = config.group_object_class, group_search_attributes(config)
    else:
        raise ValueError(f"unknown scope {scope}")
    return SearchQuery(
        base=dn,
        filter=object_class_filter(object_class),
        scope=BASE,
        attributes=tuple(attributes),
    )


def _unique(names: List[str]) -> List[str]:
    seen = set()
    result = []
    for name in names:
        if name and name.lower() not in seen:
            seen.add(name.lower())
            result.append(name)
    return result
